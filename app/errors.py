"""
Domain exceptions for the attachment subsystem.

Every error carries the HTTP status it maps to; ``app.main`` renders any
``AttachmentError`` as ``{"detail": message}`` with that status. Messages
must never include tokens or other secrets.

No automatic retries happen inside the core. Callers decide whether an
``UpstreamError`` is worth retrying.
"""


class AttachmentError(Exception):
    """Base class for all attachment-subsystem errors."""

    status_code = 500


class InvalidInput(AttachmentError):
    """Malformed request or an operation not allowed in the current state.

    Examples: missing file, unsupported MIME type, replacing a REMOVED
    attachment, removing one twice. Never retried.
    """

    status_code = 400


class NotFound(AttachmentError):
    """Missing attachment, financial record, or bulk job."""

    status_code = 404


class QuotaExceeded(AttachmentError):
    """The record already holds the maximum number of ACTIVE attachments."""

    status_code = 400


class NotConnected(AttachmentError):
    """The user has no stored Drive credential and must re-authorize."""

    status_code = 409


class UpstreamError(AttachmentError):
    """Google Drive or the OAuth provider failed."""

    status_code = 502


class Unsupported(AttachmentError):
    """Operation exists for interface stability but cannot be performed."""

    status_code = 501


class EncryptionError(AttachmentError):
    """A stored secret could not be encrypted or decrypted."""

    status_code = 500


class ConfigurationError(AttachmentError):
    """Required integration settings are missing."""

    status_code = 503
