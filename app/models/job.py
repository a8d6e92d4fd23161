import enum
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base, utcnow


class BulkJobStatus(str, enum.Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    canceled = "canceled"
    failed = "failed"


ACTIVE_JOB_STATUSES = (BulkJobStatus.pending, BulkJobStatus.running)


class BulkImportJob(Base):
    __tablename__ = "bulk_import_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    initiated_by_user_id: Mapped[str] = mapped_column(String(64), index=True)
    total_files: Mapped[int] = mapped_column(default=0)
    status: Mapped[BulkJobStatus] = mapped_column(default=BulkJobStatus.pending)
    uploaded_count: Mapped[int] = mapped_column(default=0)
    duplicate_count: Mapped[int] = mapped_column(default=0)
    error_count: Mapped[int] = mapped_column(default=0)
    skipped_count: Mapped[int] = mapped_column(default=0)
    started_at: Mapped[datetime] = mapped_column(default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
