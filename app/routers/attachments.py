"""Attachment endpoints: upload, list, replace, soft-remove and orphan cleanup."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from app.database import get_db
from app.errors import NotFound
from app.schemas.attachment import (
    AttachmentResponse,
    OrphanDeleteResponse,
    OrphanListResponse,
    OrphanResponse,
)
from app.services.attachment_service import AttachmentService
from app.services.auth_service import get_current_user_id
from app.services.drive_service import get_storage_provider
from app.services.orphan_service import OrphanReconciler
from app.services.record_service import get_financial_record
from app.services.storage_provider import StorageProvider
from app.services.upload_service import read_upload

router = APIRouter()
logger = logging.getLogger(__name__)


def _require_own_record(db: Session, record_type: str, record_id: str, user_id: str) -> None:
    record = get_financial_record(db, record_type, record_id)
    if record is None or record.user_id != user_id:
        raise NotFound(f"{record_type.capitalize()} {record_id} not found")


def _require_own_attachment(service: AttachmentService, attachment_id: str, user_id: str):
    attachment = service.get(attachment_id)
    if attachment.uploaded_by_user_id != user_id:
        raise NotFound(f"Attachment {attachment_id} not found")
    return attachment


@router.post("/attachments", response_model=AttachmentResponse, status_code=201)
async def upload_attachment(
    file: UploadFile = File(...),
    record_type: str = Form(..., alias="recordType"),
    record_id: str = Form(..., alias="recordId"),
    checksum: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage_provider),
    user_id: str = Depends(get_current_user_id),
):
    """Attach a file to one of the current user's expenses or incomes.

    - Allowed types: PDF, PNG, JPEG, XLSX, DOCX; max ``ATTACHMENT_MAX_SIZE_BYTES``.
    - At most ``ATTACHMENT_MAX_PER_RECORD`` active attachments per record.
    - Drive must be connected (409 otherwise).
    """
    _require_own_record(db, record_type, record_id, user_id)
    incoming = await read_upload(file)
    attachment = AttachmentService(db, storage).upload(record_type, record_id, incoming, checksum)
    return AttachmentResponse.from_attachment(attachment)


@router.get("/records/{record_type}/{record_id}/attachments", response_model=List[AttachmentResponse])
def list_record_attachments(
    record_type: str,
    record_id: str,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage_provider),
    user_id: str = Depends(get_current_user_id),
):
    """Active attachments of a record, oldest first."""
    _require_own_record(db, record_type, record_id, user_id)
    items = AttachmentService(db, storage).list_for_record(record_type, record_id)
    return [AttachmentResponse.from_attachment(a) for a in items]


# Declared before /attachments/{attachment_id} so "orphans" is not taken as an id.
@router.get("/attachments/orphans", response_model=OrphanListResponse)
def list_orphans(
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage_provider),
    user_id: str = Depends(get_current_user_id),
):
    """Files in the current user's Drive folder that no attachment references."""
    orphans = OrphanReconciler(db, storage).scan_orphans(user_id=user_id)
    return OrphanListResponse(
        orphans=[OrphanResponse.model_validate(o) for o in orphans],
        count=len(orphans),
    )


@router.delete("/attachments/orphans/{remote_id}", response_model=OrphanDeleteResponse)
def delete_orphan(
    remote_id: str,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage_provider),
    user_id: str = Depends(get_current_user_id),
):
    """Permanently delete an untracked file from the current user's Drive."""
    OrphanReconciler(db, storage).delete_orphan(remote_id, user_id)
    return OrphanDeleteResponse(deleted=remote_id)


@router.get("/attachments/{attachment_id}", response_model=AttachmentResponse)
def get_attachment(
    attachment_id: str,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage_provider),
    user_id: str = Depends(get_current_user_id),
):
    service = AttachmentService(db, storage)
    return AttachmentResponse.from_attachment(_require_own_attachment(service, attachment_id, user_id))


@router.put("/attachments/{attachment_id}", response_model=AttachmentResponse)
async def replace_attachment(
    attachment_id: str,
    file: UploadFile = File(...),
    checksum: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage_provider),
    user_id: str = Depends(get_current_user_id),
):
    """Upload new content for an attachment; the old one is retired with retention."""
    service = AttachmentService(db, storage)
    _require_own_attachment(service, attachment_id, user_id)
    incoming = await read_upload(file)
    return AttachmentResponse.from_attachment(service.replace(attachment_id, incoming, checksum))


@router.delete("/attachments/{attachment_id}", response_model=AttachmentResponse)
def remove_attachment(
    attachment_id: str,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage_provider),
    user_id: str = Depends(get_current_user_id),
):
    """Soft-remove; the Drive file is kept until the retention period ends."""
    service = AttachmentService(db, storage)
    _require_own_attachment(service, attachment_id, user_id)
    return AttachmentResponse.from_attachment(service.remove(attachment_id))
