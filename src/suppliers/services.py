"""Business logic for supplier rosters.

Every write goes through here so the stage consistency rule of the
product's targets fires in the same transaction as the supplier change.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction

from core.exceptions import ImportValidationError, NotFoundError
from core.normalization import normalize_product_name
from suppliers.models import Supplier
from targets import pricing
from targets.consistency import ConsistencyResult, lock_product_suppliers, on_supplier_added, on_supplier_removed

logger = logging.getLogger("sourcing")

SUPPLIER_FIELDS = (
    "product_name",
    "supplier_name",
    "created_by_name",
    "currency",
    "unit_price_foreign",
    "fx_rate",
    "tariff_rate",
    "additional_cost_rate",
    "dmf_registered",
    "linkage_status",
    "note",
)


@dataclass
class SupplierChangeResult:
    suppliers: list = field(default_factory=list)
    deleted_count: int = 0
    consistency: ConsistencyResult | None = None
    # Set when an edit moved a supplier away from another product.
    previous_product: ConsistencyResult | None = None

    @property
    def affected_target_ids(self) -> list:
        ids = []
        for result in (self.previous_product, self.consistency):
            if result is not None:
                ids.extend(result.affected_target_ids)
        return ids

    @property
    def rolled_back(self) -> bool:
        return any(
            result is not None and result.rolled_back
            for result in (self.previous_product, self.consistency)
        )

    @property
    def remaining_suppliers(self) -> int:
        return self.consistency.supplier_count if self.consistency else 0


def _to_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "y", "o", "on")


def clean_supplier_data(data: dict, *, row: int | None = None) -> dict:
    """Validate one supplier payload and return model-ready values."""
    unknown = set(data) - set(SUPPLIER_FIELDS)
    if unknown:
        raise ImportValidationError(f"Unknown supplier field(s): {', '.join(sorted(unknown))}.", field="", row=row)

    cleaned = {}
    for name, label in (
        ("product_name", "Product"),
        ("supplier_name", "Supplier name"),
        ("created_by_name", "Registered by"),
    ):
        value = str(data.get(name) or "").strip()
        if not value:
            raise ImportValidationError(f"{label} is required.", field=name, row=row)
        cleaned[name] = value

    currency = str(data.get("currency") or "").strip().upper()
    if len(currency) != 3 or not currency.isalpha():
        raise ImportValidationError("A three-letter currency code is required.", field="currency", row=row)
    cleaned["currency"] = currency

    def number(name, label, *, default=None, positive=False):
        raw = data.get(name)
        if raw is None or raw == "":
            if default is None:
                raise ImportValidationError(f"{label} is required.", field=name, row=row)
            return default
        try:
            value = pricing.to_decimal(raw, name)
        except ValueError:
            raise ImportValidationError(f"{label} must be a number.", field=name, row=row) from None
        if positive and value <= 0:
            raise ImportValidationError(f"{label} must be greater than 0.", field=name, row=row)
        if value < 0:
            raise ImportValidationError(f"{label} cannot be negative.", field=name, row=row)
        return value

    cleaned["unit_price_foreign"] = number("unit_price_foreign", "Unit price", positive=True)
    if pricing.is_local_currency(currency):
        cleaned["fx_rate"] = pricing.ONE
    else:
        cleaned["fx_rate"] = number("fx_rate", "Exchange rate", positive=True)
    cleaned["tariff_rate"] = number("tariff_rate", "Tariff rate", default=pricing.ZERO)
    cleaned["additional_cost_rate"] = number("additional_cost_rate", "Additional cost rate", default=pricing.ZERO)

    cleaned["dmf_registered"] = _to_bool(data.get("dmf_registered"))
    linkage_status = data.get("linkage_status") or Supplier.LinkageStatus.PREPARING
    if linkage_status not in Supplier.LinkageStatus.values:
        raise ImportValidationError(
            f"Linkage status must be one of {', '.join(Supplier.LinkageStatus.values)}.",
            field="linkage_status",
            row=row,
        )
    cleaned["linkage_status"] = linkage_status
    cleaned["note"] = str(data.get("note") or "").strip()
    return cleaned


def get_supplier(supplier_id, *, for_update: bool = False) -> Supplier:
    queryset = Supplier.objects.select_for_update() if for_update else Supplier.objects.all()
    try:
        supplier = queryset.filter(pk=supplier_id).first()
    except (DjangoValidationError, ValueError, TypeError):
        supplier = None
    if supplier is None:
        raise NotFoundError(f"Supplier {supplier_id} not found.", details={"supplier_id": str(supplier_id)})
    return supplier


@transaction.atomic
def create_suppliers(product_name, rows, *, actor_name: str | None = None) -> SupplierChangeResult:
    """Register one or more suppliers for a product.

    All suppliers are validated before any is written. Targets of the
    product still before SOURCING_COMPLETED are then advanced.
    """
    if not str(product_name or "").strip():
        raise ImportValidationError("Product is required.", field="product_name")
    if not rows:
        raise ImportValidationError("At least one supplier is required.", field="suppliers")

    cleaned_rows = [
        clean_supplier_data({**row, "product_name": product_name}, row=index)
        for index, row in enumerate(rows, start=1)
    ]
    suppliers = []
    for cleaned in cleaned_rows:
        supplier = Supplier(**cleaned)
        supplier.save()
        suppliers.append(supplier)

    consistency = on_supplier_added(product_name, actor_name=actor_name)
    logger.info(
        "%d supplier(s) registered for '%s'; %d target(s) advanced.",
        len(suppliers), product_name, len(consistency.affected_target_ids),
    )
    return SupplierChangeResult(suppliers=suppliers, consistency=consistency)


def create_supplier(*, actor_name: str | None = None, **fields) -> SupplierChangeResult:
    product_name = fields.pop("product_name", None)
    return create_suppliers(product_name, [fields], actor_name=actor_name)


@transaction.atomic
def update_supplier(supplier_id, *, actor_name: str | None = None, **changes) -> SupplierChangeResult:
    supplier = get_supplier(supplier_id, for_update=True)
    previous_name = supplier.product_name
    previous_key = supplier.product_key

    currency = str(changes.get("currency") or "").strip().upper()
    if (
        currency
        and "fx_rate" not in changes
        and currency != supplier.currency
        and not pricing.is_local_currency(currency)
    ):
        raise ImportValidationError(f"An exchange rate is required for currency {currency}.", field="fx_rate")

    current = {name: getattr(supplier, name) for name in SUPPLIER_FIELDS}
    cleaned = clean_supplier_data({**current, **changes})
    if normalize_product_name(cleaned["product_name"]) != previous_key:
        lock_product_suppliers(previous_key)
    for name, value in cleaned.items():
        setattr(supplier, name, value)
    supplier.save()

    result = SupplierChangeResult(suppliers=[supplier])
    if supplier.product_key != previous_key:
        result.previous_product = on_supplier_removed(previous_name, actor_name=actor_name)
        result.consistency = on_supplier_added(supplier.product_name, actor_name=actor_name)
        logger.info(
            "Supplier %s moved from '%s' to '%s'.",
            supplier.pk, previous_name, supplier.product_name,
        )
    return result


@transaction.atomic
def delete_supplier(supplier_id, *, actor_name: str | None = None) -> SupplierChangeResult:
    """Delete one supplier, rolling targets back if it was the last one."""
    supplier = get_supplier(supplier_id)
    lock_product_suppliers(supplier.product_key)
    deleted_count, _ = Supplier.objects.filter(pk=supplier.pk).delete()
    if not deleted_count:
        raise NotFoundError(f"Supplier {supplier_id} not found.", details={"supplier_id": str(supplier_id)})

    consistency = on_supplier_removed(supplier.product_name, actor_name=actor_name)
    logger.info(
        "Supplier %s deleted for '%s'; %d left.",
        supplier.supplier_name, supplier.product_name, consistency.supplier_count,
    )
    return SupplierChangeResult(deleted_count=deleted_count, consistency=consistency)


@transaction.atomic
def delete_suppliers_by_name(product_name, supplier_name, *, actor_name: str | None = None) -> SupplierChangeResult:
    """Delete every record of ``supplier_name`` for the (normalized) product."""
    key = normalize_product_name(product_name)
    supplier_name = str(supplier_name or "").strip()
    if not key or not supplier_name:
        raise ImportValidationError("Product and supplier name are required.", field="supplier_name")

    lock_product_suppliers(key)
    deleted_count, _ = Supplier.objects.filter(product_key=key, supplier_name=supplier_name).delete()
    if not deleted_count:
        raise NotFoundError(
            f"No supplier {supplier_name} registered for {product_name}.",
            details={"product_name": product_name, "supplier_name": supplier_name},
        )

    consistency = on_supplier_removed(product_name, actor_name=actor_name)
    logger.info(
        "%d record(s) of supplier %s deleted for '%s'; %d left.",
        deleted_count, supplier_name, product_name, consistency.supplier_count,
    )
    return SupplierChangeResult(deleted_count=deleted_count, consistency=consistency)


def suppliers_for_product(product_name) -> list:
    """Suppliers of a product, one per supplier name (the newest record)."""
    key = normalize_product_name(product_name)
    if not key:
        return []
    seen = set()
    roster = []
    for supplier in Supplier.objects.filter(product_key=key).order_by("-created_at", "-pk"):
        if supplier.supplier_name in seen:
            continue
        seen.add(supplier.supplier_name)
        roster.append(supplier)
    return roster
