"""Serializers for API v1."""
from rest_framework import serializers

from suppliers.models import Supplier
from targets.models import CURRENT_PRICE_FIELDS, StageHistory, Target
from targets.pricing import is_local_currency
from targets.stages import Stage


class TargetSerializer(serializers.ModelSerializer):
    current_stage_label = serializers.CharField(source="get_current_stage_display", read_only=True)

    class Meta:
        model = Target
        fields = [
            "id", "year", "account_name", "product_name", "product_key", "quantity_kg",
            "owner_name", "prior_year_sales", "segment",
            "current_currency", "current_unit_price_foreign", "current_fx_rate",
            "current_tariff_rate", "current_additional_cost_rate",
            "current_unit_price_local", "current_total_local",
            "estimate_currency", "estimate_unit_price_foreign", "estimate_fx_rate",
            "estimate_tariff_rate", "estimate_additional_cost_rate",
            "estimate_unit_price_local", "estimate_revenue_local",
            "saving_per_unit", "total_saving", "saving_rate",
            "current_stage", "current_stage_label", "stage_progress_rate", "stage_updated_at",
            "note", "created_by", "created_at", "updated_at",
        ]
        read_only_fields = [
            "id", "product_key",
            "current_unit_price_local", "current_total_local",
            "estimate_unit_price_local", "estimate_revenue_local",
            "saving_per_unit", "total_saving", "saving_rate",
            "current_stage", "stage_progress_rate", "stage_updated_at",
            "created_by", "created_at", "updated_at",
        ]
        # Uniqueness is checked by the service so that it can report it per field.
        validators = []
        extra_kwargs = {
            "estimate_fx_rate": {"required": False, "allow_null": True},
            "estimate_tariff_rate": {"required": False},
            "estimate_additional_cost_rate": {"required": False},
        }

    def validate_quantity_kg(self, value):
        if value <= 0:
            raise serializers.ValidationError("Quantity must be greater than 0.")
        return value

    def validate(self, attrs):
        # A blank currency clears the whole current purchase price.
        if "current_currency" in attrs and not (attrs["current_currency"] or "").strip():
            for name in CURRENT_PRICE_FIELDS:
                attrs[name] = None
        for name in ("current_currency", "estimate_currency"):
            if attrs.get(name):
                attrs[name] = attrs[name].strip().upper()
        self._validate_fx_rates(attrs)
        return attrs

    def _validate_fx_rates(self, attrs):
        """A foreign currency needs an exchange rate; a changed one needs a new rate."""
        for prefix in ("current", "estimate"):
            currency_field, fx_field = f"{prefix}_currency", f"{prefix}_fx_rate"
            stored_currency = getattr(self.instance, currency_field, None) or ""
            currency = attrs.get(currency_field, stored_currency)
            if not currency or is_local_currency(currency):
                continue
            if fx_field in attrs:
                missing = attrs[fx_field] is None
            else:
                missing = self.instance is None or currency != stored_currency.upper()
            if missing:
                raise serializers.ValidationError(
                    {fx_field: f"An exchange rate is required for currency {currency}."}
                )


class StageHistorySerializer(serializers.ModelSerializer):
    stage_label = serializers.CharField(source="get_stage_display", read_only=True)

    class Meta:
        model = StageHistory
        fields = ["id", "target", "from_stage", "stage", "stage_label", "changed_at", "actor_name", "comment"]
        read_only_fields = fields


class StageChangeSerializer(serializers.Serializer):
    stage = serializers.ChoiceField(choices=Stage.choices)
    actor_name = serializers.CharField(max_length=120, required=False, allow_blank=True)
    comment = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class SupplierSerializer(serializers.ModelSerializer):
    class Meta:
        model = Supplier
        fields = [
            "id", "product_name", "product_key", "supplier_name", "created_by_name",
            "currency", "unit_price_foreign", "fx_rate", "tariff_rate", "additional_cost_rate",
            "unit_price_local", "dmf_registered", "linkage_status", "note",
            "created_at", "updated_at",
        ]
        read_only_fields = ["id", "product_key", "unit_price_local", "created_at", "updated_at"]
        extra_kwargs = {
            "fx_rate": {"required": False, "allow_null": True},
            "tariff_rate": {"required": False},
            "additional_cost_rate": {"required": False},
        }


class SupplierBulkCreateSerializer(serializers.Serializer):
    product_name = serializers.CharField(max_length=255)
    actor_name = serializers.CharField(max_length=120, required=False, allow_blank=True)
    suppliers = serializers.ListField(child=serializers.DictField(), min_length=1)


class SupplierDeleteByNameSerializer(serializers.Serializer):
    product_name = serializers.CharField(max_length=255)
    supplier_name = serializers.CharField(max_length=255)
    actor_name = serializers.CharField(max_length=120, required=False, allow_blank=True)
