"""Local-currency pricing and savings calculations.

Rates are given in percent (``5`` means 5 %). All arithmetic is done on
``Decimal``; nothing here rounds, rounding happens when values are stored.
A missing current-purchase price yields savings of ``None`` ("no data"),
which is never the same thing as a saving of zero.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.conf import settings

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def to_decimal(value, field: str = "value") -> Decimal:
    """Convert numbers and numeric strings (``"1,300.5"``) to ``Decimal``."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"{field}: invalid number.")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        value = repr(value)
    text = str(value).strip().replace(",", "")
    try:
        result = Decimal(text)
    except (InvalidOperation, ValueError):
        raise ValueError(f"{field}: invalid number {value!r}.") from None
    if not result.is_finite():
        raise ValueError(f"{field}: invalid number {value!r}.")
    return result


def quantize(value: Decimal | None, places: int) -> Decimal | None:
    if value is None:
        return None
    return value.quantize(ONE.scaleb(-places), rounding=ROUND_HALF_UP)


def local_currency() -> str:
    return getattr(settings, "SOURCING_LOCAL_CURRENCY", "KRW")


def is_local_currency(currency) -> bool:
    return (currency or "").strip().upper() == local_currency()


def effective_fx_rate(currency, fx_rate) -> Decimal:
    """The local currency always converts at 1, whatever rate was entered."""
    if is_local_currency(currency):
        return ONE
    if fx_rate is None or fx_rate == "":
        raise ValueError(f"An exchange rate is required for currency {currency}.")
    return to_decimal(fx_rate, "fx_rate")


def local_unit_price(unit_price_foreign, fx_rate, tariff_rate=ZERO, additional_cost_rate=ZERO) -> Decimal:
    """foreign price x fx x (1 + tariff % + additional cost %)."""
    multiplier = ONE + to_decimal(tariff_rate) / HUNDRED + to_decimal(additional_cost_rate) / HUNDRED
    return to_decimal(unit_price_foreign) * to_decimal(fx_rate) * multiplier


@dataclass(frozen=True)
class PriceInput:
    currency: str
    unit_price_foreign: Decimal
    fx_rate: Decimal | None = None
    tariff_rate: Decimal = ZERO
    additional_cost_rate: Decimal = ZERO


@dataclass(frozen=True)
class PriceBlock:
    currency: str
    unit_price_foreign: Decimal
    fx_rate: Decimal
    tariff_rate: Decimal
    additional_cost_rate: Decimal
    unit_price_local: Decimal
    total_local: Decimal


@dataclass(frozen=True)
class Savings:
    saving_per_unit: Decimal | None = None
    total_saving: Decimal | None = None
    saving_rate: Decimal | None = None

    @property
    def has_data(self) -> bool:
        return self.saving_per_unit is not None


NO_SAVINGS = Savings()


@dataclass(frozen=True)
class PricingResult:
    quantity: Decimal
    estimate: PriceBlock
    current: PriceBlock | None
    savings: Savings

    def as_fields(self) -> dict:
        """Flatten into the column names used by ``targets.Target``."""
        fields = {}
        for prefix, block in (("current", self.current), ("estimate", self.estimate)):
            fields[f"{prefix}_currency"] = block.currency if block else None
            fields[f"{prefix}_unit_price_foreign"] = block.unit_price_foreign if block else None
            fields[f"{prefix}_fx_rate"] = block.fx_rate if block else None
            fields[f"{prefix}_tariff_rate"] = block.tariff_rate if block else None
            fields[f"{prefix}_additional_cost_rate"] = block.additional_cost_rate if block else None
            fields[f"{prefix}_unit_price_local"] = block.unit_price_local if block else None
        fields["current_total_local"] = self.current.total_local if self.current else None
        fields["estimate_revenue_local"] = self.estimate.total_local
        fields["saving_per_unit"] = self.savings.saving_per_unit
        fields["total_saving"] = self.savings.total_saving
        fields["saving_rate"] = self.savings.saving_rate
        return fields


def compute_price_block(price: PriceInput, quantity) -> PriceBlock:
    currency = (price.currency or "").strip().upper()
    fx_rate = effective_fx_rate(currency, price.fx_rate)
    tariff_rate = to_decimal(price.tariff_rate if price.tariff_rate is not None else ZERO, "tariff_rate")
    additional_cost_rate = to_decimal(
        price.additional_cost_rate if price.additional_cost_rate is not None else ZERO,
        "additional_cost_rate",
    )
    unit_price_foreign = to_decimal(price.unit_price_foreign, "unit_price_foreign")
    unit_price = local_unit_price(unit_price_foreign, fx_rate, tariff_rate, additional_cost_rate)
    return PriceBlock(
        currency=currency,
        unit_price_foreign=unit_price_foreign,
        fx_rate=fx_rate,
        tariff_rate=tariff_rate,
        additional_cost_rate=additional_cost_rate,
        unit_price_local=unit_price,
        total_local=unit_price * to_decimal(quantity, "quantity"),
    )


def compute_savings(current_unit_price, estimate_unit_price, quantity) -> Savings:
    """Savings of the estimate against the current purchase price.

    Without a current price there is no baseline, so every output is ``None``.
    """
    if current_unit_price is None:
        return NO_SAVINGS
    current_unit_price = to_decimal(current_unit_price)
    saving_per_unit = current_unit_price - to_decimal(estimate_unit_price)
    if current_unit_price == ZERO:
        saving_rate = ZERO
    else:
        saving_rate = saving_per_unit / current_unit_price
    return Savings(
        saving_per_unit=saving_per_unit,
        total_saving=saving_per_unit * to_decimal(quantity, "quantity"),
        saving_rate=saving_rate,
    )


def compute_pricing(quantity, estimate: PriceInput, current: PriceInput | None = None) -> PricingResult:
    quantity = to_decimal(quantity, "quantity")
    estimate_block = compute_price_block(estimate, quantity)
    current_block = compute_price_block(current, quantity) if current is not None else None
    savings = compute_savings(
        current_block.unit_price_local if current_block else None,
        estimate_block.unit_price_local,
        quantity,
    )
    return PricingResult(
        quantity=quantity,
        estimate=estimate_block,
        current=current_block,
        savings=savings,
    )
