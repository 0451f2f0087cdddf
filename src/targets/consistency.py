"""Keep target stages consistent with the supplier roster of their product.

A target at SOURCING_COMPLETED or later must have at least one supplier
whose normalized product name matches its own. Adding a supplier pulls
pre-sourcing targets forward; removing the last one rolls the supplier
backed targets back to SOURCING_REQUEST. Both run inside one transaction
per product with the affected rows locked, and only rewrite targets that
are still in the stages they act on, so replaying them is harmless.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.normalization import normalize_product_name
from suppliers.models import Supplier
from targets.models import StageHistory, Target
from targets.stages import PRE_SOURCING_STAGES, SUPPLIER_BACKED_STAGES, Stage

logger = logging.getLogger("sourcing")


@dataclass
class ConsistencyResult:
    product_key: str
    supplier_count: int = 0
    affected_target_ids: list = field(default_factory=list)
    advanced: bool = False
    rolled_back: bool = False

    def as_dict(self) -> dict:
        return {
            "product_key": self.product_key,
            "supplier_count": self.supplier_count,
            "affected_target_ids": [str(pk) for pk in self.affected_target_ids],
            "advanced": self.advanced,
            "rolled_back": self.rolled_back,
        }


def system_actor() -> str:
    return getattr(settings, "SOURCING_SYSTEM_ACTOR", "System")


def count_suppliers(product_name) -> int:
    key = normalize_product_name(product_name)
    if not key:
        return 0
    return Supplier.objects.filter(product_key=key).count()


def lock_product_suppliers(product_name) -> list:
    """Lock every supplier row of a product and return their ids.

    Concurrent deletions for the same product queue up here, so the
    remaining count each of them sees afterwards is the committed one.
    """
    key = normalize_product_name(product_name)
    return list(
        Supplier.objects.select_for_update()
        .filter(product_key=key)
        .order_by("pk")
        .values_list("pk", flat=True)
    )


def apply_stage_change(target: Target, to_stage, *, actor_name: str, comment: str | None = None) -> StageHistory:
    """Move a (locked) target to ``to_stage`` and append its history entry."""
    now = timezone.now()
    from_stage = target.current_stage
    target.current_stage = to_stage
    target.stage_updated_at = now
    target.save(update_fields=["current_stage", "stage_updated_at"])
    return StageHistory.objects.create(
        target=target,
        from_stage=from_stage,
        stage=to_stage,
        changed_at=now,
        actor_name=actor_name,
        comment=comment,
    )


@transaction.atomic
def on_supplier_added(product_name, *, actor_name: str | None = None) -> ConsistencyResult:
    """Advance MARKET_RESEARCH / SOURCING_REQUEST targets of the product."""
    key = normalize_product_name(product_name)
    result = ConsistencyResult(product_key=key)
    if not key:
        return result

    result.supplier_count = Supplier.objects.filter(product_key=key).count()
    if result.supplier_count == 0:
        return result

    targets = list(
        Target.objects.select_for_update()
        .filter(product_key=key, current_stage__in=PRE_SOURCING_STAGES)
        .order_by("created_at")
    )
    for target in targets:
        previous = target.current_stage
        apply_stage_change(
            target,
            Stage.SOURCING_COMPLETED,
            actor_name=actor_name or system_actor(),
            comment=(
                f"{result.supplier_count} supplier(s) registered "
                f"({previous} -> {Stage.SOURCING_COMPLETED})"
            ),
        )
        result.affected_target_ids.append(target.pk)

    result.advanced = bool(targets)
    if targets:
        logger.info(
            "Product '%s': %d target(s) advanced to SOURCING_COMPLETED (%d supplier(s)).",
            key, len(targets), result.supplier_count,
        )
    return result


@transaction.atomic
def on_supplier_removed(product_name, *, actor_name: str | None = None) -> ConsistencyResult:
    """Roll targets back to SOURCING_REQUEST once no supplier is left."""
    key = normalize_product_name(product_name)
    result = ConsistencyResult(product_key=key)
    if not key:
        return result

    result.supplier_count = Supplier.objects.filter(product_key=key).count()
    if result.supplier_count > 0:
        return result

    targets = list(
        Target.objects.select_for_update()
        .filter(product_key=key, current_stage__in=SUPPLIER_BACKED_STAGES)
        .order_by("created_at")
    )
    for target in targets:
        previous = target.current_stage
        apply_stage_change(
            target,
            Stage.SOURCING_REQUEST,
            actor_name=actor_name or system_actor(),
            comment=(
                f"All suppliers removed: automatic rollback "
                f"({previous} -> {Stage.SOURCING_REQUEST})"
            ),
        )
        result.affected_target_ids.append(target.pk)

    result.rolled_back = bool(targets)
    if targets:
        logger.info(
            "Product '%s': no supplier left, %d target(s) rolled back to SOURCING_REQUEST.",
            key, len(targets),
        )
    return result


def find_inconsistent_targets():
    """Targets at SOURCING_COMPLETED or later whose product has no supplier."""
    return (
        Target.objects.filter(current_stage__in=SUPPLIER_BACKED_STAGES)
        .exclude(product_key__in=Supplier.objects.values("product_key"))
        .order_by("product_key", "account_name")
    )


def repair_inconsistent_targets(*, actor_name: str | None = None) -> list[ConsistencyResult]:
    product_keys = sorted(set(find_inconsistent_targets().values_list("product_key", flat=True)))
    results = [on_supplier_removed(key, actor_name=actor_name) for key in product_keys]
    repaired = sum(len(result.affected_target_ids) for result in results)
    if repaired:
        logger.warning(
            "Consistency audit: %d target(s) without supplier rolled back to SOURCING_REQUEST.",
            repaired,
        )
    return results


def rebuild_product_keys() -> dict:
    """Re-derive the stored normalized product name of every row."""
    counts = {"targets": 0, "suppliers": 0}
    for model, label in ((Target, "targets"), (Supplier, "suppliers")):
        for pk, product_name, product_key in model.objects.values_list("pk", "product_name", "product_key").iterator():
            fresh = normalize_product_name(product_name)
            if fresh != product_key:
                model.objects.filter(pk=pk).update(product_key=fresh)
                counts[label] += 1
    return counts
