import enum
import uuid
from datetime import datetime
from datetime import date as date_type
from typing import Optional
from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base, utcnow
from app.models.record import RecordType


class AttachmentStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    REMOVED = "REMOVED"


def _new_id() -> str:
    return str(uuid.uuid4())


class Attachment(Base):
    """One uploaded file linked to exactly one expense or income."""

    __tablename__ = "attachments"
    __table_args__ = (
        CheckConstraint(
            "(linked_expense_id IS NULL) <> (linked_income_id IS NULL)",
            name="ck_attachments_single_record",
        ),
        Index("ix_attachments_status_retention", "status", "retention_expires_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    linked_expense_id: Mapped[Optional[str]] = mapped_column(ForeignKey("expenses.id"), index=True)
    linked_income_id: Mapped[Optional[str]] = mapped_column(ForeignKey("incomes.id"), index=True)
    # Drive object
    drive_file_id: Mapped[str] = mapped_column(String(255), index=True)
    mime_type: Mapped[str] = mapped_column(String(255))
    size_bytes: Mapped[int] = mapped_column(BigInteger)
    original_filename: Mapped[str] = mapped_column(String(500))
    checksum: Mapped[str] = mapped_column(String(64), index=True)
    web_view_link: Mapped[Optional[str]] = mapped_column(Text)
    uploaded_by_user_id: Mapped[str] = mapped_column(String(64), index=True)
    # Denormalized from the owning record for reporting without joins
    record_type: Mapped[RecordType]
    record_date: Mapped[Optional[date_type]]
    amount_minor_units: Mapped[Optional[int]] = mapped_column(BigInteger)
    category_id: Mapped[Optional[str]] = mapped_column(String(36))
    # Lifecycle
    status: Mapped[AttachmentStatus] = mapped_column(default=AttachmentStatus.ACTIVE)
    replaced_by_attachment_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("attachments.id"), nullable=True
    )
    retention_expires_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)

    @property
    def linked_record_type(self) -> RecordType:
        return RecordType.expense if self.linked_expense_id else RecordType.income

    @property
    def linked_record_id(self) -> str:
        return self.linked_expense_id or self.linked_income_id

    @staticmethod
    def linkage(record_type: RecordType, record_id: str) -> dict:
        """Column values linking an attachment to *record_id*; the other side stays NULL."""
        if RecordType(record_type) == RecordType.expense:
            return {"linked_expense_id": record_id, "linked_income_id": None}
        return {"linked_expense_id": None, "linked_income_id": record_id}

    @classmethod
    def linked_to(cls, record_type: RecordType, record_id: str):
        """Filter expression matching attachments of one record."""
        if RecordType(record_type) == RecordType.expense:
            return cls.linked_expense_id == record_id
        return cls.linked_income_id == record_id
