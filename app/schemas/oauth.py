from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class AuthorizeResponse(BaseModel):
    url: str


class ExchangeRequest(BaseModel):
    code: str
    state: Optional[str] = None

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        return v.strip()


class ExchangeResponse(BaseModel):
    access_token: str
    expires_at: Optional[datetime] = None
    refresh_stored: bool

    model_config = _CAMEL


class RevokeResponse(BaseModel):
    success: bool


class StatusResponse(BaseModel):
    connected: bool
