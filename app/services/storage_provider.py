"""Storage backend interface for attachment bytes.

The lifecycle, bulk, orphan and purge services depend only on this
interface. ``GoogleDriveProvider`` in ``drive_service`` is the production
implementation; tests plug in an in-memory one.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class UploadContext:
    """Attachment context recorded on the remote object's metadata."""

    record_type: str
    record_id: str
    checksum: Optional[str] = None

    def as_properties(self) -> Dict[str, str]:
        props = {"recordType": self.record_type, "recordId": self.record_id}
        if self.checksum:
            props["checksum"] = self.checksum
        return props


@dataclass
class UploadResult:
    remote_id: str
    link: str
    mime_type: str
    size: int
    filename: str


@dataclass
class RemoteFile:
    remote_id: str
    filename: str
    size: Optional[int] = None
    mime_type: Optional[str] = None
    properties: Dict[str, str] = field(default_factory=dict)


class StorageProvider(ABC):
    """Per-user remote storage.

    Every operation runs with the user's own delegated credential; a user
    who has not connected storage gets ``NotConnected``. Remote failures are
    raised as ``UpstreamError``.
    """

    @abstractmethod
    def ensure_user_root(self, user_id: str) -> str:
        """Return the id of the user's root folder, creating it once."""

    @abstractmethod
    def upload(
        self,
        user_id: str,
        content: bytes,
        filename: str,
        mime_type: str,
        context: Optional[UploadContext] = None,
    ) -> UploadResult:
        """Store *content* under the user's root folder."""

    @abstractmethod
    def replace(
        self,
        user_id: str,
        remote_id: str,
        content: bytes,
        filename: str,
        mime_type: str,
        context: Optional[UploadContext] = None,
    ) -> UploadResult:
        """Store new content for an existing object; may yield a new remote id."""

    @abstractmethod
    def delete(self, user_id: str, remote_id: str) -> None:
        """Delete a remote object. Deleting an object that is already gone succeeds."""

    @abstractmethod
    def list_user_files(self, user_id: str) -> List[RemoteFile]:
        """All files in the user's root folder."""

    def list_all_files(self) -> List[RemoteFile]:
        """Files visible to an application-wide credential.

        Per-user storage has no such credential, so this is empty unless a
        backend overrides it.
        """
        return []
