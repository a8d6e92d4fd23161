"""Bulk attachment import: start, poll, cancel, and record-mapping suggestions."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.errors import InvalidInput, NotFound
from app.schemas.bulk import (
    BulkJobResponse,
    BulkStartResponse,
    FileSuggestions,
    MappingCandidateSchema,
    SuggestionRequest,
    SuggestionResponse,
)
from app.services.auth_service import get_current_user_id
from app.services.bulk_mapping import suggest_mapping
from app.services.bulk_service import BulkFile, BulkImportService, get_bulk_import_service
from app.services.record_service import get_financial_record, list_user_records, parse_record_type
from app.services.upload_service import read_upload

router = APIRouter()
logger = logging.getLogger(__name__)


def _own_job(service: BulkImportService, job_id: str, user_id: str):
    job = service.get_job_status(job_id)
    if job is None or job.initiated_by_user_id != user_id:
        raise HTTPException(status_code=404, detail="Bulk import job not found")
    return job


@router.post("", response_model=BulkStartResponse, status_code=202)
async def start_bulk_import(
    files: List[UploadFile] = File(...),
    record_type: str = Form(..., alias="recordType"),
    record_ids: Optional[List[str]] = Form(None, alias="recordIds"),
    db: Session = Depends(get_db),
    service: BulkImportService = Depends(get_bulk_import_service),
    user_id: str = Depends(get_current_user_id),
):
    """Queue up to ``BULK_MAX_FILES`` files for import.

    ``recordIds`` pairs each file with a target record by position; an empty
    entry (or no ``recordIds`` at all) leaves that file unassigned and it is
    counted as skipped.

    Every named record must belong to the current user; otherwise the whole
    request is rejected with 404 and no job is created.
    """
    settings = get_settings()
    rtype = parse_record_type(record_type)
    if not files:
        raise InvalidInput("No files provided")
    if len(files) > settings.BULK_MAX_FILES:
        raise InvalidInput(f"At most {settings.BULK_MAX_FILES} files per bulk import")
    if record_ids is not None and len(record_ids) != len(files):
        raise InvalidInput(
            f"recordIds length ({len(record_ids)}) must match the number of files ({len(files)})"
        )
    for record_id in sorted({(rid or "").strip() for rid in record_ids or []} - {""}):
        record = get_financial_record(db, rtype, record_id)
        if record is None or record.user_id != user_id:
            raise NotFound(f"{rtype.value.capitalize()} {record_id} not found")

    bulk_files = []
    for idx, upload in enumerate(files):
        incoming = await read_upload(upload)
        record_id = (record_ids[idx] or "").strip() if record_ids else ""
        bulk_files.append(
            BulkFile(
                filename=incoming.filename,
                mime_type=incoming.mime_type,
                content=incoming.content,
                record_type=rtype,
                record_id=record_id or None,
            )
        )

    return service.start_bulk_import(user_id, bulk_files)


@router.post("/suggestions", response_model=SuggestionResponse)
def suggest_record_mapping(
    body: SuggestionRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Rank the current user's records as likely targets for each filename."""
    records = list_user_records(db, user_id, body.record_type)
    suggestions = [
        FileSuggestions(
            filename=name,
            candidates=[
                MappingCandidateSchema.model_validate(c)
                for c in suggest_mapping(name, records, body.record_type)
            ],
        )
        for name in body.filenames
    ]
    return SuggestionResponse(suggestions=suggestions)


@router.get("/{job_id}", response_model=BulkJobResponse)
def get_bulk_job(
    job_id: str,
    service: BulkImportService = Depends(get_bulk_import_service),
    user_id: str = Depends(get_current_user_id),
):
    return _own_job(service, job_id, user_id)


@router.patch("/{job_id}", response_model=BulkJobResponse)
def cancel_bulk_job(
    job_id: str,
    service: BulkImportService = Depends(get_bulk_import_service),
    user_id: str = Depends(get_current_user_id),
):
    """Cancel a pending or running job. Finished jobs are returned as they are."""
    _own_job(service, job_id, user_id)
    return service.cancel_job(job_id)
