from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel
from app.models.job import BulkJobStatus
from app.models.record import RecordType

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class BulkStartResponse(BaseModel):
    job_id: str
    status: BulkJobStatus
    total_files: int

    model_config = _CAMEL


class BulkJobResponse(BaseModel):
    id: str
    initiated_by_user_id: str
    total_files: int
    status: BulkJobStatus
    uploaded_count: int
    duplicate_count: int
    error_count: int
    skipped_count: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    model_config = {"from_attributes": True, **_CAMEL}


class SuggestionRequest(BaseModel):
    record_type: RecordType
    filenames: List[str]

    model_config = _CAMEL

    @field_validator("filenames")
    @classmethod
    def filenames_not_empty(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("At least one filename is required")
        return v


class MappingCandidateSchema(BaseModel):
    record_id: str
    record_type: RecordType
    confidence: float
    matched_on: List[str]

    model_config = {"from_attributes": True, **_CAMEL}


class FileSuggestions(BaseModel):
    filename: str
    candidates: List[MappingCandidateSchema]


class SuggestionResponse(BaseModel):
    suggestions: List[FileSuggestions]
