from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from app.models.attachment import AttachmentStatus
from app.models.record import RecordType

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class AttachmentResponse(BaseModel):
    id: str
    filename: str
    mime_type: str
    size_bytes: int
    checksum: str
    web_view_link: Optional[str] = None
    record_type: RecordType
    record_id: str
    status: AttachmentStatus
    replaced_by_attachment_id: Optional[str] = None
    created_at: datetime
    retention_expires_at: Optional[datetime] = None

    model_config = {"from_attributes": True, **_CAMEL}

    @classmethod
    def from_attachment(cls, attachment) -> "AttachmentResponse":
        return cls(
            id=attachment.id,
            filename=attachment.original_filename,
            mime_type=attachment.mime_type,
            size_bytes=attachment.size_bytes,
            checksum=attachment.checksum,
            web_view_link=attachment.web_view_link,
            record_type=attachment.linked_record_type,
            record_id=attachment.linked_record_id,
            status=attachment.status,
            replaced_by_attachment_id=attachment.replaced_by_attachment_id,
            created_at=attachment.created_at,
            retention_expires_at=attachment.retention_expires_at,
        )


class OrphanResponse(BaseModel):
    remote_id: str
    filename: str
    size: Optional[int] = None
    detected_at: datetime

    model_config = {"from_attributes": True, **_CAMEL}


class OrphanListResponse(BaseModel):
    orphans: List[OrphanResponse]
    count: int

    model_config = _CAMEL


class OrphanDeleteResponse(BaseModel):
    deleted: str
