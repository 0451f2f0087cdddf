"""Celery configuration."""
import os
from celery import Celery
from celery.schedules import crontab

os.environ.setdefault(
    "DJANGO_SETTINGS_MODULE",
    os.getenv("DJANGO_SETTINGS_MODULE", "config.settings.dev"),
)

app = Celery("sourcing")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()

# Beat schedule
app.conf.beat_schedule = {
    "audit-stage-consistency": {
        "task": "targets.tasks.audit_stage_consistency",
        "schedule": crontab(minute=30, hour=2),  # Daily at 2:30am
    },
}
