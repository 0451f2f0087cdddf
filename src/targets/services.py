"""Business logic for sourcing targets."""
from __future__ import annotations

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction

from core.exceptions import ImportValidationError, NotFoundError, PersistenceError, SupplierRequiredError
from targets import pricing
from targets.consistency import apply_stage_change, count_suppliers, lock_product_suppliers, system_actor
from targets.models import CURRENT_PRICE_FIELDS, ESTIMATE_PRICE_FIELDS, StageHistory, Target
from targets.stages import Stage, coerce_stage, requires_supplier

logger = logging.getLogger("sourcing")

EDITABLE_FIELDS = (
    "year",
    "account_name",
    "product_name",
    "quantity_kg",
    "owner_name",
    "prior_year_sales",
    "segment",
    *CURRENT_PRICE_FIELDS,
    *ESTIMATE_PRICE_FIELDS,
    "note",
)


def get_target(target_id, *, for_update: bool = False) -> Target:
    queryset = Target.objects.select_for_update() if for_update else Target.objects.all()
    try:
        target = queryset.filter(pk=target_id).first()
    except (DjangoValidationError, ValueError, TypeError):
        target = None
    if target is None:
        raise NotFoundError(f"Target {target_id} not found.", details={"target_id": str(target_id)})
    return target


def _save_target(target: Target) -> None:
    """Save inside a savepoint and translate database failures."""
    try:
        with transaction.atomic():
            target.save()
    except IntegrityError as exc:
        if Target.objects.filter(
            account_name=target.account_name,
            product_name=target.product_name,
        ).exclude(pk=target.pk).exists():
            raise ImportValidationError(
                f"A target for {target.account_name} / {target.product_name} already exists.",
                field="product_name",
            ) from exc
        raise PersistenceError(str(exc)) from exc
    except DatabaseError as exc:
        raise PersistenceError(str(exc)) from exc


def _check_fields(fields: dict) -> None:
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if "current_stage" in unknown or "stage_progress_rate" in unknown:
        raise ValueError("Use change_stage to move a target to another stage.")
    if unknown:
        raise ValueError(f"Unknown target field(s): {', '.join(sorted(unknown))}.")


def _check_fx_rates(target: Target, changes: dict) -> None:
    """A price block switched to another foreign currency needs its own rate."""
    for prefix in ("current", "estimate"):
        currency_field, fx_field = f"{prefix}_currency", f"{prefix}_fx_rate"
        if currency_field not in changes or fx_field in changes:
            continue
        currency = (changes[currency_field] or "").strip().upper()
        previous = (getattr(target, currency_field) or "").strip().upper()
        if currency and currency != previous and not pricing.is_local_currency(currency):
            raise ImportValidationError(
                f"An exchange rate is required for currency {currency}.",
                field=fx_field,
            )


@transaction.atomic
def create_target(*, actor_name: str | None = None, comment: str = "New target registered", **fields) -> Target:
    """Register a target at MARKET_RESEARCH and log its first history entry."""
    _check_fields(fields)
    target = Target(**fields)
    target.current_stage = Stage.MARKET_RESEARCH
    target.created_by = actor_name or target.owner_name or ""
    _save_target(target)
    StageHistory.objects.create(
        target=target,
        stage=Stage.MARKET_RESEARCH,
        changed_at=target.created_at,
        actor_name=actor_name or target.owner_name or system_actor(),
        comment=comment,
    )
    logger.info("Target created: %s (%s).", target, target.pk)
    return target


@transaction.atomic
def update_target(target_id, *, actor_name: str | None = None, **changes) -> Target:
    """Edit a target's fields. The stage is never changed by an edit,
    except that renaming the product to one without any supplier rolls a
    supplier backed target back to SOURCING_REQUEST."""
    _check_fields(changes)
    target = get_target(target_id, for_update=True)
    previous_key = target.product_key
    _check_fx_rates(target, changes)
    for name, value in changes.items():
        setattr(target, name, value)
    _save_target(target)

    if target.product_key != previous_key and requires_supplier(target.current_stage):
        lock_product_suppliers(target.product_name)
        if count_suppliers(target.product_name) == 0:
            previous = target.current_stage
            apply_stage_change(
                target,
                Stage.SOURCING_REQUEST,
                actor_name=actor_name or system_actor(),
                comment=f"Product changed to one without suppliers: automatic rollback ({previous} -> {Stage.SOURCING_REQUEST})",
            )
    return target


@transaction.atomic
def change_stage(target_id, to_stage, *, actor_name: str | None = None, comment: str | None = None) -> Target:
    """Move a target to ``to_stage``.

    Moving to the current stage does nothing. Any stage at or after
    SOURCING_COMPLETED needs at least one supplier for the target's
    product, otherwise :class:`SupplierRequiredError` is raised and the
    target is left untouched.
    """
    try:
        to_stage = coerce_stage(to_stage)
    except ValueError as exc:
        raise ImportValidationError(str(exc), field="stage") from exc

    target = get_target(target_id, for_update=True)
    if target.current_stage == to_stage:
        return target

    if requires_supplier(to_stage):
        # Serializes with supplier deletions, which lock the same rows.
        lock_product_suppliers(target.product_name)
        if count_suppliers(target.product_name) == 0:
            logger.warning(
                "Stage change refused for target %s: %s requires a supplier for '%s'.",
                target.pk, to_stage, target.product_name,
            )
            raise SupplierRequiredError(
                f"Register at least one supplier for {target.product_name} before moving to {to_stage.label}.",
                details={"target_id": str(target.pk), "stage": str(to_stage)},
            )

    previous = target.current_stage
    apply_stage_change(
        target,
        to_stage,
        actor_name=actor_name or system_actor(),
        comment=comment or None,
    )
    logger.info("Target %s moved %s -> %s by %s.", target.pk, previous, to_stage, actor_name or system_actor())
    return target


@transaction.atomic
def delete_target(target_id) -> None:
    target = get_target(target_id, for_update=True)
    try:
        target.delete()
    except DatabaseError as exc:
        raise PersistenceError(str(exc)) from exc
    logger.info("Target deleted: %s.", target_id)


def stage_history(target_id):
    target = get_target(target_id)
    return target.stage_history.all()
