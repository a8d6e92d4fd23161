"""Hard deletion of soft-removed attachments past their retention window."""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.database import utcnow
from app.models.attachment import Attachment, AttachmentStatus
from app.services.storage_provider import StorageProvider

logger = logging.getLogger(__name__)


@dataclass
class PurgeResult:
    examined: int = 0
    purged: int = 0
    drive_errors: int = 0
    db_errors: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class RetentionPurger:
    def __init__(self, db: Session, storage: StorageProvider):
        self.db = db
        self.storage = storage

    def purge(self, now: Optional[datetime] = None) -> PurgeResult:
        """Delete expired REMOVED attachments one at a time.

        The remote delete is attempted first; its failure is counted but does
        not keep the row. A failed row delete is rolled back and counted, and
        the row is picked up again on the next run.
        """
        now = now or utcnow()
        expired = [
            (a.id, a.drive_file_id, a.uploaded_by_user_id)
            for a in self.db.query(Attachment)
            .filter(
                Attachment.status == AttachmentStatus.REMOVED,
                Attachment.retention_expires_at.is_not(None),
                Attachment.retention_expires_at < now,
            )
            .order_by(Attachment.retention_expires_at)
            .all()
        ]
        result = PurgeResult(examined=len(expired))
        logger.info("Purge: %d expired attachments", len(expired))

        for attachment_id, drive_file_id, user_id in expired:
            try:
                self.storage.delete(user_id, drive_file_id)
            except Exception as exc:
                result.drive_errors += 1
                logger.error(
                    "Purge: Drive delete failed for attachment %s (file %s): %s",
                    attachment_id, drive_file_id, exc,
                )

            try:
                # Rows superseded by this one must not keep a dangling reference.
                self.db.query(Attachment).filter(
                    Attachment.replaced_by_attachment_id == attachment_id
                ).update({"replaced_by_attachment_id": None})
                self.db.query(Attachment).filter(Attachment.id == attachment_id).delete()
                self.db.commit()
                result.purged += 1
            except SQLAlchemyError as exc:
                self.db.rollback()
                result.db_errors += 1
                logger.error("Purge: DB delete failed for attachment %s: %s", attachment_id, exc)

        logger.info(
            "Purge complete: examined=%d purged=%d drive_errors=%d db_errors=%d",
            result.examined, result.purged, result.drive_errors, result.db_errors,
        )
        return result
