"""Pipeline stages of a sourcing target and their progress rates."""
from __future__ import annotations

from django.db import models


class Stage(models.TextChoices):
    MARKET_RESEARCH = "MARKET_RESEARCH", "Market research"
    SOURCING_REQUEST = "SOURCING_REQUEST", "Sourcing request"
    SOURCING_COMPLETED = "SOURCING_COMPLETED", "Sourcing completed"
    QUOTE_SENT = "QUOTE_SENT", "Quote sent"
    SAMPLE_SHIPPED = "SAMPLE_SHIPPED", "Sample shipped"
    QUALIFICATION = "QUALIFICATION", "Qualification"
    DMF_RA_REVIEW = "DMF_RA_REVIEW", "DMF / RA review"
    PRICE_AGREED = "PRICE_AGREED", "Price agreed"
    TRIAL_PO = "TRIAL_PO", "Trial PO"
    REGISTRATION = "REGISTRATION", "Registration"
    COMMERCIAL_PO = "COMMERCIAL_PO", "Commercial PO"
    WON = "WON", "Won"
    LOST = "LOST", "Lost"
    ON_HOLD = "ON_HOLD", "On hold"


FORWARD_ORDER = (
    Stage.MARKET_RESEARCH,
    Stage.SOURCING_REQUEST,
    Stage.SOURCING_COMPLETED,
    Stage.QUOTE_SENT,
    Stage.SAMPLE_SHIPPED,
    Stage.QUALIFICATION,
    Stage.DMF_RA_REVIEW,
    Stage.PRICE_AGREED,
    Stage.TRIAL_PO,
    Stage.REGISTRATION,
    Stage.COMMERCIAL_PO,
    Stage.WON,
)

SIDE_STAGES = (Stage.LOST, Stage.ON_HOLD)

# Order used by boards and funnels: forward stages, then side states.
DISPLAY_ORDER = FORWARD_ORDER + SIDE_STAGES

STAGE_PROGRESS = {
    Stage.MARKET_RESEARCH: 0,
    Stage.SOURCING_REQUEST: 5,
    Stage.SOURCING_COMPLETED: 10,
    Stage.QUOTE_SENT: 20,
    Stage.SAMPLE_SHIPPED: 30,
    Stage.QUALIFICATION: 40,
    Stage.DMF_RA_REVIEW: 50,
    Stage.PRICE_AGREED: 60,
    Stage.TRIAL_PO: 70,
    Stage.REGISTRATION: 80,
    Stage.COMMERCIAL_PO: 90,
    Stage.WON: 100,
    Stage.LOST: 0,
    Stage.ON_HOLD: 50,
}

_FORWARD_INDEX = {stage: index for index, stage in enumerate(FORWARD_ORDER)}

# Stages an upward trigger may advance from.
PRE_SOURCING_STAGES = (Stage.MARKET_RESEARCH, Stage.SOURCING_REQUEST)

# Stages that require at least one supplier for the target's product.
SUPPLIER_BACKED_STAGES = FORWARD_ORDER[_FORWARD_INDEX[Stage.SOURCING_COMPLETED]:]


def coerce_stage(value) -> Stage:
    """Return ``value`` as a :class:`Stage`, raising ``ValueError`` when unknown."""
    try:
        return Stage(value)
    except ValueError:
        raise ValueError(f"Unknown stage: {value!r}.") from None


def progress_for(stage) -> int:
    return STAGE_PROGRESS[coerce_stage(stage)]


def forward_index(stage) -> int | None:
    """Position in the forward order, ``None`` for LOST and ON_HOLD."""
    return _FORWARD_INDEX.get(coerce_stage(stage))


def is_at_or_after(stage, reference) -> bool:
    index = forward_index(stage)
    reference_index = forward_index(reference)
    if index is None or reference_index is None:
        return False
    return index >= reference_index


def requires_supplier(stage) -> bool:
    return is_at_or_after(stage, Stage.SOURCING_COMPLETED)
