import logging

from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.reconcile.scan_orphans")
def scan_orphans(user_id: str = None):
    """Report Drive files no attachment references. Nothing is deleted."""
    from app.database import SessionLocal
    from app.services.drive_service import get_storage_provider
    from app.services.orphan_service import OrphanReconciler

    with SessionLocal() as db:
        orphans = OrphanReconciler(db, get_storage_provider()).scan_orphans(user_id=user_id)

    for orphan in orphans:
        logger.warning(
            "Orphan file %s (%s, %s bytes) for user %s",
            orphan.remote_id, orphan.filename, orphan.size, orphan.user_id,
        )
    logger.info("Orphan scan finished: %d orphans", len(orphans))
    return {
        "status": "ok",
        "count": len(orphans),
        "orphans": [
            {
                "remote_id": o.remote_id,
                "filename": o.filename,
                "size": o.size,
                "user_id": o.user_id,
                "detected_at": o.detected_at.isoformat(),
            }
            for o in orphans
        ],
    }
