from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base, utcnow

DRIVE_FILE_SCOPE = "https://www.googleapis.com/auth/drive.file"


class UserDriveAuth(Base):
    """Per-user delegated Drive credential; the refresh token is stored encrypted."""

    __tablename__ = "user_drive_auth"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    encrypted_refresh_token: Mapped[str] = mapped_column(Text)
    scopes: Mapped[Optional[str]] = mapped_column(String(500))  # comma-separated
    last_validated_at: Mapped[Optional[datetime]]
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)
