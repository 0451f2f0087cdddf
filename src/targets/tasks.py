"""Celery tasks for the targets app."""
import logging

from celery import shared_task

logger = logging.getLogger("sourcing")


@shared_task(name="targets.tasks.audit_stage_consistency")
def audit_stage_consistency():
    """Roll back targets left at SOURCING_COMPLETED or later without any supplier."""
    from targets.consistency import repair_inconsistent_targets

    results = repair_inconsistent_targets()
    repaired = sum(len(result.affected_target_ids) for result in results)
    logger.info("audit_stage_consistency completed: %d target(s) rolled back.", repaired)
    return f"{repaired} targets rolled back"
