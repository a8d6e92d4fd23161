import logging

from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.cleanup.purge_expired_attachments")
def purge_expired_attachments():
    """Hard-delete REMOVED attachments whose retention period has ended."""
    from app.database import SessionLocal
    from app.services.drive_service import get_storage_provider
    from app.services.retention_service import RetentionPurger

    logger.info("Purge job started")
    with SessionLocal() as db:
        result = RetentionPurger(db, get_storage_provider()).purge()

    logger.info(
        "Purge job finished: examined=%d purged=%d drive_errors=%d db_errors=%d",
        result.examined, result.purged, result.drive_errors, result.db_errors,
    )
    return {"status": "ok", **result.as_dict()}
