"""API v1 viewsets for targets, suppliers and reports."""
import logging

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from api.v1.pagination import StandardResultsSetPagination
from api.v1.serializers import (
    StageChangeSerializer,
    StageHistorySerializer,
    SupplierBulkCreateSerializer,
    SupplierDeleteByNameSerializer,
    SupplierSerializer,
    TargetSerializer,
)
from core.exceptions import ImportValidationError, NotFoundError, PersistenceError, SourcingError
from core.normalization import normalize_product_name
from reports.services import autocomplete_names, build_pipeline_summary
from suppliers import services as supplier_services
from suppliers.models import Supplier
from targets import imports as target_imports
from targets import services as target_services
from targets.models import Target

logger = logging.getLogger("sourcing")


def _error_response(exc):
    """Translate a service error into an API response."""
    if isinstance(exc, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, PersistenceError):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    if isinstance(exc, SourcingError):
        return Response(exc.as_dict(), status=status_code)
    return Response({"detail": str(exc)}, status=status_code)


def _actor_name(request, data=None):
    name = ""
    if data is not None:
        name = str(data.get("actor_name") or "").strip()
    if name:
        return name
    user = request.user
    return (user.get_full_name() or user.get_username()).strip()


def _supplier_change_payload(result):
    return {
        "suppliers": SupplierSerializer(result.suppliers, many=True).data,
        "suppliers_created": len(result.suppliers),
        "deleted_count": result.deleted_count,
        "remaining_suppliers": result.remaining_suppliers,
        "rolled_back": result.rolled_back,
        "affected_targets": [str(pk) for pk in result.affected_target_ids],
    }


class TargetViewSet(viewsets.ModelViewSet):
    serializer_class = TargetSerializer
    queryset = Target.objects.all()
    pagination_class = StandardResultsSetPagination
    filterset_fields = ["current_stage", "owner_name", "segment", "year", "account_name"]
    search_fields = ["account_name", "product_name", "owner_name"]
    ordering_fields = [
        "created_at", "account_name", "product_name", "stage_progress_rate",
        "estimate_revenue_local", "total_saving", "stage_updated_at",
    ]

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            target = target_services.create_target(
                actor_name=_actor_name(request, request.data),
                **serializer.validated_data,
            )
        except ValueError as e:
            return _error_response(e)
        return Response(self.get_serializer(target).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        target = self.get_object()
        serializer = self.get_serializer(target, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        try:
            target = target_services.update_target(
                target.pk,
                actor_name=_actor_name(request, request.data),
                **serializer.validated_data,
            )
        except ValueError as e:
            return _error_response(e)
        return Response(self.get_serializer(target).data)

    def destroy(self, request, *args, **kwargs):
        target = self.get_object()
        try:
            target_services.delete_target(target.pk)
        except ValueError as e:
            return _error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path="change-stage")
    def change_stage(self, request, pk=None):
        serializer = StageChangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            target = target_services.change_stage(
                pk,
                data["stage"],
                actor_name=_actor_name(request, data),
                comment=data.get("comment") or None,
            )
        except ValueError as e:
            return _error_response(e)
        return Response(self.get_serializer(target).data)

    @action(detail=True, methods=["get"])
    def history(self, request, pk=None):
        try:
            entries = target_services.stage_history(pk)
        except ValueError as e:
            return _error_response(e)
        return Response(StageHistorySerializer(entries, many=True).data)

    @action(detail=True, methods=["get"])
    def suppliers(self, request, pk=None):
        target = self.get_object()
        roster = supplier_services.suppliers_for_product(target.product_name)
        return Response(SupplierSerializer(roster, many=True).data)

    @action(detail=False, methods=["get"])
    def export(self, request):
        queryset = self.filter_queryset(self.get_queryset()).order_by("account_name", "product_name")
        return target_imports.export_targets_to_excel(queryset)

    @action(detail=False, methods=["get"], url_path="import/template")
    def import_template(self, request):
        return target_imports.build_import_template()

    @action(detail=False, methods=["post"], url_path="import/validate")
    def import_validate(self, request):
        try:
            rows = self._import_rows(request)
        except ValueError as e:
            return _error_response(e)
        result = target_imports.validate_import_batch(rows)
        return Response(result.as_validation_dict())

    @action(detail=False, methods=["post"], url_path="import/commit")
    def import_commit(self, request):
        try:
            rows = self._import_rows(request)
        except ValueError as e:
            return _error_response(e)
        result = target_imports.commit_import_batch(rows, actor_name=_actor_name(request, request.data))
        if not result.committed:
            payload = result.as_commit_dict()
            payload.update(
                detail="The import contains invalid rows; nothing was saved.",
                valid_rows=result.valid_rows,
                invalid_rows=result.invalid_rows,
            )
            return Response(payload, status=status.HTTP_400_BAD_REQUEST)
        return Response(result.as_commit_dict())

    def _import_rows(self, request):
        upload = request.FILES.get("file")
        if upload is not None:
            if not upload.name.lower().endswith(".xlsx"):
                raise ImportValidationError("Only .xlsx files can be imported.", field="file")
            return target_imports.read_workbook_rows(upload)
        records = request.data.get("rows")
        if records is None:
            raise ImportValidationError("Upload an .xlsx file or send a list of rows.", field="file")
        return target_imports.records_to_rows(records)


class SupplierViewSet(viewsets.ModelViewSet):
    serializer_class = SupplierSerializer
    queryset = Supplier.objects.all()
    pagination_class = StandardResultsSetPagination
    filterset_fields = ["currency", "linkage_status", "dmf_registered", "supplier_name"]
    search_fields = ["supplier_name", "product_name", "created_by_name"]
    ordering_fields = ["created_at", "supplier_name", "product_name", "unit_price_local"]

    def get_queryset(self):
        qs = super().get_queryset()
        product_name = self.request.query_params.get("product_name")
        if product_name:
            qs = qs.filter(product_key=normalize_product_name(product_name))
        return qs

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = supplier_services.create_supplier(
                actor_name=_actor_name(request, request.data),
                **serializer.validated_data,
            )
        except ValueError as e:
            return _error_response(e)
        return Response(_supplier_change_payload(result), status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        supplier = self.get_object()
        serializer = self.get_serializer(supplier, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        try:
            result = supplier_services.update_supplier(
                supplier.pk,
                actor_name=_actor_name(request, request.data),
                **serializer.validated_data,
            )
        except ValueError as e:
            return _error_response(e)
        payload = _supplier_change_payload(result)
        payload["supplier"] = payload["suppliers"][0]
        return Response(payload)

    def destroy(self, request, *args, **kwargs):
        supplier = self.get_object()
        try:
            result = supplier_services.delete_supplier(
                supplier.pk,
                actor_name=_actor_name(request, request.data),
            )
        except ValueError as e:
            return _error_response(e)
        return Response(_supplier_change_payload(result))

    @action(detail=False, methods=["post"])
    def bulk(self, request):
        serializer = SupplierBulkCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            result = supplier_services.create_suppliers(
                data["product_name"],
                data["suppliers"],
                actor_name=_actor_name(request, data),
            )
        except ValueError as e:
            return _error_response(e)
        return Response(_supplier_change_payload(result), status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], url_path="delete-by-name")
    def delete_by_name(self, request):
        serializer = SupplierDeleteByNameSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            result = supplier_services.delete_suppliers_by_name(
                data["product_name"],
                data["supplier_name"],
                actor_name=_actor_name(request, data),
            )
        except ValueError as e:
            return _error_response(e)
        return Response(_supplier_change_payload(result))

    @action(detail=False, methods=["get"])
    def roster(self, request):
        product_name = request.query_params.get("product_name", "")
        if not product_name.strip():
            raise ValidationError({"product_name": "This parameter is required."})
        roster = supplier_services.suppliers_for_product(product_name)
        return Response(SupplierSerializer(roster, many=True).data)


class PipelineSummaryView(APIView):
    def get(self, request):
        qs = Target.objects.all()
        owner_name = request.query_params.get("owner_name")
        if owner_name:
            qs = qs.filter(owner_name=owner_name)
        year = request.query_params.get("year")
        if year:
            if not year.isdigit():
                raise ValidationError({"year": "Must be a year."})
            qs = qs.filter(year=int(year))
        return Response(build_pipeline_summary(qs))


class AutocompleteView(APIView):
    def get(self, request):
        prefix = request.query_params.get("q", "")
        try:
            limit = min(int(request.query_params.get("limit", 20)), 100)
        except ValueError:
            raise ValidationError({"limit": "Must be an integer."})
        return Response(autocomplete_names(prefix, limit=max(limit, 1)))
