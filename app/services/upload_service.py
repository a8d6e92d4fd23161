"""Upload service: incoming file validation ahead of the attachment lifecycle."""
import logging
from dataclasses import dataclass

from app.config import get_settings
from app.errors import InvalidInput

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "image/png",
    "image/jpeg",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


@dataclass
class IncomingFile:
    filename: str
    mime_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def validate_upload(file: IncomingFile, max_size_bytes: int = None) -> None:
    """Reject empty, oversize and non-whitelisted files with ``InvalidInput``."""
    limit = max_size_bytes if max_size_bytes is not None else get_settings().ATTACHMENT_MAX_SIZE_BYTES
    if not file.filename:
        raise InvalidInput("File name is required")
    if file.mime_type not in ALLOWED_MIME_TYPES:
        raise InvalidInput(
            f"Unsupported file type '{file.mime_type}'. "
            "Allowed: PDF, PNG, JPEG, XLSX, DOCX."
        )
    if file.size == 0:
        raise InvalidInput("Uploaded file is empty")
    if file.size > limit:
        raise InvalidInput(f"File exceeds maximum size of {limit} bytes")


async def read_upload(upload, max_size_bytes: int = None) -> IncomingFile:
    """Read a FastAPI ``UploadFile`` into an ``IncomingFile`` and validate it."""
    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    content = await upload.read()
    incoming = IncomingFile(
        filename=upload.filename or "",
        mime_type=content_type,
        content=content,
    )
    validate_upload(incoming, max_size_bytes)
    logger.debug("Accepted upload %s (%s, %d bytes)", incoming.filename, content_type, incoming.size)
    return incoming
