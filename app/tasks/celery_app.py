from celery import Celery
from celery.schedules import crontab
from app.config import get_settings
from app.logging_config import configure_logging

settings = get_settings()
configure_logging()


def _crontab(expr: str) -> crontab:
    """Build a celery crontab from a five-field cron expression."""
    fields = expr.split()
    if len(fields) != 5:
        raise ValueError(f"Expected a five-field cron expression, got {expr!r}")
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
    )


celery_app = Celery(
    "attachments_worker",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["app.tasks.cleanup", "app.tasks.reconcile"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    worker_hijack_root_logger=False,
    beat_schedule={
        "purge-expired-attachments": {
            "task": "app.tasks.cleanup.purge_expired_attachments",
            "schedule": _crontab(settings.CRON_PURGE_SCHEDULE),
        },
        "orphan-scan": {
            "task": "app.tasks.reconcile.scan_orphans",
            "schedule": _crontab(settings.CRON_ORPHAN_SCAN_SCHEDULE),
        },
    },
)
