"""Supplier offers for a product, matched to targets by product name."""
from decimal import Decimal

from django.db import models

from core.models import TimeStampedModel
from core.normalization import normalize_product_name
from targets import pricing


class Supplier(TimeStampedModel):
    class LinkageStatus(models.TextChoices):
        PREPARING = "PREPARING", "Preparing"
        IN_PROGRESS = "IN_PROGRESS", "In progress"
        COMPLETED = "COMPLETED", "Completed"

    product_name = models.CharField(max_length=255)
    product_key = models.CharField(max_length=255, db_index=True, editable=False)
    supplier_name = models.CharField(max_length=255)
    created_by_name = models.CharField(max_length=120)
    currency = models.CharField(max_length=3)
    unit_price_foreign = models.DecimalField(max_digits=18, decimal_places=4)
    fx_rate = models.DecimalField(max_digits=14, decimal_places=4)
    tariff_rate = models.DecimalField(max_digits=7, decimal_places=3, default=Decimal("0"))
    additional_cost_rate = models.DecimalField(max_digits=7, decimal_places=3, default=Decimal("0"))
    unit_price_local = models.DecimalField(max_digits=20, decimal_places=4, default=Decimal("0"))
    dmf_registered = models.BooleanField(default=False)
    linkage_status = models.CharField(
        max_length=20,
        choices=LinkageStatus.choices,
        default=LinkageStatus.PREPARING,
    )
    note = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["product_key", "supplier_name"], name="suppliers_s_product_a41c9e_idx"),
        ]

    def __str__(self):
        return f"{self.supplier_name} ({self.product_name})"

    def save(self, *args, **kwargs):
        self.product_key = normalize_product_name(self.product_name)
        self.currency = (self.currency or "").strip().upper()
        # Priced from the values as stored, so a re-save gives the same amount.
        self.fx_rate = pricing.quantize(pricing.effective_fx_rate(self.currency, self.fx_rate), 4)
        self.unit_price_foreign = pricing.quantize(pricing.to_decimal(self.unit_price_foreign, "unit_price_foreign"), 4)
        self.tariff_rate = pricing.quantize(pricing.to_decimal(self.tariff_rate or pricing.ZERO, "tariff_rate"), 3)
        self.additional_cost_rate = pricing.quantize(
            pricing.to_decimal(self.additional_cost_rate or pricing.ZERO, "additional_cost_rate"), 3
        )
        self.unit_price_local = pricing.quantize(
            pricing.local_unit_price(
                self.unit_price_foreign,
                self.fx_rate,
                self.tariff_rate,
                self.additional_cost_rate,
            ),
            4,
        )
        update_fields = kwargs.get("update_fields")
        if update_fields is not None:
            kwargs["update_fields"] = set(update_fields) | {
                "product_key",
                "currency",
                "fx_rate",
                "unit_price_foreign",
                "tariff_rate",
                "additional_cost_rate",
                "unit_price_local",
                "updated_at",
            }
        super().save(*args, **kwargs)
