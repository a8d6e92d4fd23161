import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import get_settings
from app.errors import QuotaExceeded
from app.models.attachment import Attachment, AttachmentStatus
from app.models.record import RecordType

logger = logging.getLogger(__name__)


class LimitChecker:
    """Per-record cap on ACTIVE attachments.

    The count and the later insert are not atomic; two concurrent uploads to
    the same record can both pass the check.
    """

    def __init__(self, db: Session, max_per_record: int = None):
        self.db = db
        self.max_per_record = (
            max_per_record if max_per_record is not None else get_settings().ATTACHMENT_MAX_PER_RECORD
        )

    def count_active(self, record_type: RecordType, record_id: str) -> int:
        return (
            self.db.query(func.count(Attachment.id))
            .filter(
                Attachment.linked_to(record_type, record_id),
                Attachment.status == AttachmentStatus.ACTIVE,
            )
            .scalar()
        ) or 0

    def assert_can_attach(self, record_type: RecordType, record_id: str) -> None:
        count = self.count_active(record_type, record_id)
        if count >= self.max_per_record:
            logger.info(
                "Attachment limit reached for %s %s (%d/%d)",
                record_type, record_id, count, self.max_per_record,
            )
            raise QuotaExceeded(
                f"Maximum {self.max_per_record} attachments per record reached"
            )
