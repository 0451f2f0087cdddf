"""Models for sourcing targets and their stage history."""
from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.utils import timezone

from core.models import TimeStampedModel
from core.normalization import normalize_product_name
from targets import pricing
from targets.stages import Stage, progress_for

CURRENT_PRICE_FIELDS = (
    "current_currency",
    "current_unit_price_foreign",
    "current_fx_rate",
    "current_tariff_rate",
    "current_additional_cost_rate",
)
ESTIMATE_PRICE_FIELDS = (
    "estimate_currency",
    "estimate_unit_price_foreign",
    "estimate_fx_rate",
    "estimate_tariff_rate",
    "estimate_additional_cost_rate",
)
DERIVED_FIELDS = (
    "product_key",
    "stage_progress_rate",
    "current_currency",
    "current_fx_rate",
    "current_tariff_rate",
    "current_additional_cost_rate",
    "current_unit_price_local",
    "current_total_local",
    "estimate_currency",
    "estimate_fx_rate",
    "estimate_tariff_rate",
    "estimate_additional_cost_rate",
    "estimate_unit_price_local",
    "estimate_revenue_local",
    "saving_per_unit",
    "total_saving",
    "saving_rate",
)

# Decimal places of each stored amount, pricing inputs included.
_STORED_PLACES = {
    "quantity_kg": 3,
    "unit_price_foreign": 4,
    "fx_rate": 4,
    "tariff_rate": 3,
    "additional_cost_rate": 3,
    "unit_price_local": 4,
    "current_total_local": 2,
    "estimate_revenue_local": 2,
    "saving_per_unit": 4,
    "total_saving": 2,
    "saving_rate": 6,
}

# Inputs rounded to their column precision before pricing, so a later save
# derives the same amounts from what was stored.
PRICING_INPUT_FIELDS = (
    "quantity_kg",
    "current_unit_price_foreign",
    "current_fx_rate",
    "current_tariff_rate",
    "current_additional_cost_rate",
    "estimate_unit_price_foreign",
    "estimate_fx_rate",
    "estimate_tariff_rate",
    "estimate_additional_cost_rate",
)


def _places_for(field_name: str) -> int | None:
    for suffix, places in _STORED_PLACES.items():
        if field_name.endswith(suffix):
            return places
    return None


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class Target(TimeStampedModel):
    """One sourcing opportunity for an (account, product) pair."""

    class Segment(models.TextChoices):
        S = "S", "S"
        P = "P", "P"
        GENERAL = "일반", "General"

    Stage = Stage

    year = models.PositiveSmallIntegerField(null=True, blank=True)
    account_name = models.CharField(max_length=255)
    product_name = models.CharField(max_length=255)
    product_key = models.CharField(max_length=255, db_index=True, editable=False)
    quantity_kg = models.DecimalField(max_digits=14, decimal_places=3)
    owner_name = models.CharField(max_length=120)
    prior_year_sales = models.DecimalField(max_digits=20, decimal_places=2, null=True, blank=True)
    segment = models.CharField(max_length=10, choices=Segment.choices, blank=True, default="")

    # Current purchase price: optional as a whole.
    current_currency = models.CharField(max_length=3, null=True, blank=True)
    current_unit_price_foreign = models.DecimalField(max_digits=18, decimal_places=4, null=True, blank=True)
    current_fx_rate = models.DecimalField(max_digits=14, decimal_places=4, null=True, blank=True)
    current_tariff_rate = models.DecimalField(max_digits=7, decimal_places=3, null=True, blank=True)
    current_additional_cost_rate = models.DecimalField(max_digits=7, decimal_places=3, null=True, blank=True)
    current_unit_price_local = models.DecimalField(max_digits=20, decimal_places=4, null=True, blank=True)
    current_total_local = models.DecimalField(max_digits=22, decimal_places=2, null=True, blank=True)

    # Estimated sale price: mandatory.
    estimate_currency = models.CharField(max_length=3)
    estimate_unit_price_foreign = models.DecimalField(max_digits=18, decimal_places=4)
    estimate_fx_rate = models.DecimalField(max_digits=14, decimal_places=4, null=True, blank=True)
    estimate_tariff_rate = models.DecimalField(max_digits=7, decimal_places=3, default=Decimal("0"))
    estimate_additional_cost_rate = models.DecimalField(max_digits=7, decimal_places=3, default=Decimal("0"))
    estimate_unit_price_local = models.DecimalField(max_digits=20, decimal_places=4, default=Decimal("0"))
    estimate_revenue_local = models.DecimalField(max_digits=22, decimal_places=2, default=Decimal("0"))

    # Savings stay NULL when there is no current purchase price.
    saving_per_unit = models.DecimalField(max_digits=20, decimal_places=4, null=True, blank=True)
    total_saving = models.DecimalField(max_digits=22, decimal_places=2, null=True, blank=True)
    saving_rate = models.DecimalField(max_digits=12, decimal_places=6, null=True, blank=True)

    current_stage = models.CharField(
        max_length=30,
        choices=Stage.choices,
        default=Stage.MARKET_RESEARCH,
        db_index=True,
    )
    stage_progress_rate = models.PositiveSmallIntegerField(default=0)
    stage_updated_at = models.DateTimeField(null=True, blank=True)
    note = models.TextField(blank=True, default="")
    created_by = models.CharField(max_length=120, blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["account_name", "product_name"],
                name="uniq_target_account_product",
            ),
        ]
        indexes = [
            models.Index(fields=["product_key", "current_stage"], name="targets_tar_product_5c1e0a_idx"),
            models.Index(fields=["owner_name", "current_stage"], name="targets_tar_owner_n_8b3f21_idx"),
        ]

    def __str__(self):
        return f"{self.account_name} / {self.product_name}"

    def current_price_input(self) -> pricing.PriceInput | None:
        """Read the current purchase block, enforcing all-or-nothing."""
        currency = self.current_currency
        price = self.current_unit_price_foreign
        fx_rate = self.current_fx_rate
        if all(_blank(value) for value in (currency, price, fx_rate)):
            return None
        if _blank(currency) or _blank(price):
            raise ValueError(
                "The current purchase price needs a currency, a unit price and an "
                "exchange rate, or must be left empty."
            )
        if _blank(fx_rate) and not pricing.is_local_currency(currency):
            raise ValueError(f"An exchange rate is required for currency {currency}.")
        return pricing.PriceInput(
            currency=currency,
            unit_price_foreign=price,
            fx_rate=fx_rate,
            tariff_rate=self.current_tariff_rate if not _blank(self.current_tariff_rate) else pricing.ZERO,
            additional_cost_rate=(
                self.current_additional_cost_rate
                if not _blank(self.current_additional_cost_rate)
                else pricing.ZERO
            ),
        )

    def estimate_price_input(self) -> pricing.PriceInput:
        if _blank(self.estimate_currency) or _blank(self.estimate_unit_price_foreign):
            raise ValueError("The estimated sale price needs a currency and a unit price.")
        if _blank(self.estimate_fx_rate) and not pricing.is_local_currency(self.estimate_currency):
            raise ValueError(f"An exchange rate is required for currency {self.estimate_currency}.")
        return pricing.PriceInput(
            currency=self.estimate_currency,
            unit_price_foreign=self.estimate_unit_price_foreign,
            fx_rate=self.estimate_fx_rate,
            tariff_rate=self.estimate_tariff_rate if not _blank(self.estimate_tariff_rate) else pricing.ZERO,
            additional_cost_rate=(
                self.estimate_additional_cost_rate
                if not _blank(self.estimate_additional_cost_rate)
                else pricing.ZERO
            ),
        )

    def compute_pricing(self) -> pricing.PricingResult:
        return pricing.compute_pricing(
            self.quantity_kg,
            estimate=self.estimate_price_input(),
            current=self.current_price_input(),
        )

    def round_pricing_inputs(self) -> None:
        for field_name in PRICING_INPUT_FIELDS:
            value = getattr(self, field_name)
            if not _blank(value):
                value = pricing.quantize(pricing.to_decimal(value, field_name), _places_for(field_name))
                setattr(self, field_name, value)

    def apply_pricing(self) -> None:
        """Recompute every derived amount from the (rounded) price inputs."""
        self.round_pricing_inputs()
        for field_name, value in self.compute_pricing().as_fields().items():
            places = _places_for(field_name)
            if places is not None:
                value = pricing.quantize(value, places)
            setattr(self, field_name, value)

    def save(self, *args, **kwargs):
        self.product_key = normalize_product_name(self.product_name)
        self.stage_progress_rate = progress_for(self.current_stage)
        self.apply_pricing()
        update_fields = kwargs.get("update_fields")
        if update_fields is not None:
            kwargs["update_fields"] = set(update_fields) | set(DERIVED_FIELDS) | {"updated_at"}
        super().save(*args, **kwargs)


class StageHistory(TimeStampedModel):
    """Append-only log of stage changes of a target."""

    target = models.ForeignKey(
        Target,
        on_delete=models.CASCADE,
        related_name="stage_history",
    )
    from_stage = models.CharField(max_length=30, choices=Stage.choices, blank=True, default="")
    stage = models.CharField(max_length=30, choices=Stage.choices)
    changed_at = models.DateTimeField(default=timezone.now, db_index=True)
    actor_name = models.CharField(max_length=120)
    comment = models.TextField(null=True, blank=True)

    class Meta:
        ordering = ["-changed_at", "-created_at"]
        verbose_name_plural = "stage history"
        indexes = [
            models.Index(fields=["target", "changed_at"], name="targets_sta_target__4d2a77_idx"),
        ]

    def __str__(self):
        return f"{self.target_id}: {self.from_stage or '-'} -> {self.stage}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Stage history entries cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Stage history entries cannot be deleted.")
