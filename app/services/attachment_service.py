"""Attachment lifecycle: upload, replace, soft-remove and listing.

State machine::

    (upload) -> ACTIVE -> REMOVED -> (hard-deleted by the retention purger)

Remote objects are never deleted here. A removed or superseded attachment
keeps its Drive file until ``retention_expires_at`` passes.
"""
import logging
import time
from datetime import timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import utcnow
from app.errors import InvalidInput, NotFound
from app.models.attachment import Attachment, AttachmentStatus
from app.models.record import RecordType
from app.services.limit_service import LimitChecker
from app.services.record_service import FinancialRecord, get_financial_record, parse_record_type
from app.services.storage_provider import StorageProvider, UploadContext, UploadResult
from app.services.upload_service import IncomingFile
from app.utils.checksum import is_sha256_hex, sha256_hex

logger = logging.getLogger(__name__)


def retention_deadline(now=None):
    """When a soft-removed attachment becomes eligible for purge."""
    return (now or utcnow()) + timedelta(days=get_settings().ATTACHMENT_RETENTION_DAYS)


class AttachmentService:
    def __init__(
        self,
        db: Session,
        storage: Optional[StorageProvider] = None,
        limit_checker: Optional[LimitChecker] = None,
    ):
        if storage is None:
            from app.services.drive_service import get_storage_provider

            storage = get_storage_provider()
        self.db = db
        self.storage = storage
        self.limit_checker = limit_checker or LimitChecker(db)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_checksum(file: IncomingFile, checksum: Optional[str]) -> str:
        if checksum:
            if not is_sha256_hex(checksum):
                raise InvalidInput("Checksum must be a 64-character hex SHA-256 digest")
            return checksum.lower()
        return sha256_hex(file.content)

    def _require_record(self, record_type: RecordType, record_id: str) -> FinancialRecord:
        record = get_financial_record(self.db, record_type, record_id)
        if record is None:
            raise NotFound(f"{record_type.value.capitalize()} {record_id} not found")
        return record

    def _new_row(
        self,
        record: FinancialRecord,
        stored: UploadResult,
        checksum: str,
    ) -> Attachment:
        return Attachment(
            **Attachment.linkage(record.record_type, record.id),
            drive_file_id=stored.remote_id,
            mime_type=stored.mime_type,
            size_bytes=stored.size,
            original_filename=stored.filename,
            checksum=checksum,
            web_view_link=stored.link,
            uploaded_by_user_id=record.user_id,
            record_type=record.record_type,
            record_date=record.date,
            amount_minor_units=record.amount_minor_units,
            category_id=record.category_id,
            status=AttachmentStatus.ACTIVE,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def upload(
        self,
        record_type,
        record_id: str,
        file: Optional[IncomingFile],
        checksum: Optional[str] = None,
    ) -> Attachment:
        started = time.monotonic()
        if file is None or not file.content:
            raise InvalidInput("No file uploaded")
        rtype = parse_record_type(record_type)
        record = self._require_record(rtype, record_id)
        self.limit_checker.assert_can_attach(rtype, record_id)
        digest = self._resolve_checksum(file, checksum)

        self.storage.ensure_user_root(record.user_id)
        stored = self.storage.upload(
            record.user_id,
            file.content,
            file.filename,
            file.mime_type,
            UploadContext(record_type=rtype.value, record_id=record_id, checksum=digest),
        )

        attachment = self._new_row(record, stored, digest)
        self.db.add(attachment)
        self.db.commit()
        logger.info(
            "Uploaded attachment %s (%s, %d bytes) for %s:%s by user %s in %.0fms",
            attachment.id, file.filename, stored.size, rtype.value, record_id,
            record.user_id, (time.monotonic() - started) * 1000,
        )
        return attachment

    def replace(
        self,
        attachment_id: str,
        file: Optional[IncomingFile],
        checksum: Optional[str] = None,
    ) -> Attachment:
        if file is None or not file.content:
            raise InvalidInput("No file uploaded")
        old = self.get(attachment_id)
        if old.status != AttachmentStatus.ACTIVE:
            raise InvalidInput("Cannot replace non-active attachment")
        record = self._require_record(old.linked_record_type, old.linked_record_id)
        digest = self._resolve_checksum(file, checksum)

        self.storage.ensure_user_root(record.user_id)
        stored = self.storage.replace(
            record.user_id,
            old.drive_file_id,
            file.content,
            file.filename,
            file.mime_type,
            UploadContext(
                record_type=record.record_type.value, record_id=record.id, checksum=digest
            ),
        )

        # New row is committed before the old one is retired, so a failure
        # in between leaves two ACTIVE rows rather than none.
        replacement = self._new_row(record, stored, digest)
        self.db.add(replacement)
        self.db.commit()

        old.status = AttachmentStatus.REMOVED
        old.replaced_by_attachment_id = replacement.id
        old.retention_expires_at = retention_deadline()
        self.db.commit()
        logger.info("Replaced attachment %s with %s", old.id, replacement.id)
        return replacement

    def remove(self, attachment_id: str) -> Attachment:
        attachment = self.get(attachment_id)
        if attachment.status == AttachmentStatus.REMOVED:
            raise InvalidInput("Attachment already removed")
        attachment.status = AttachmentStatus.REMOVED
        attachment.retention_expires_at = retention_deadline()
        self.db.commit()
        logger.info(
            "Removed attachment %s; purge eligible at %s",
            attachment.id, attachment.retention_expires_at.isoformat(),
        )
        return attachment

    def list_for_record(self, record_type, record_id: str) -> List[Attachment]:
        rtype = parse_record_type(record_type)
        return (
            self.db.query(Attachment)
            .filter(
                Attachment.linked_to(rtype, record_id),
                Attachment.status == AttachmentStatus.ACTIVE,
            )
            .order_by(Attachment.created_at.asc())
            .all()
        )

    def get(self, attachment_id: str) -> Attachment:
        attachment = self.db.get(Attachment, attachment_id)
        if attachment is None:
            raise NotFound(f"Attachment {attachment_id} not found")
        return attachment
