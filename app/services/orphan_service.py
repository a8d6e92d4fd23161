"""Orphan detection: remote files with no attachment row pointing at them.

Orphans appear when an upload succeeded remotely but the metadata commit
failed, or when files were added to the app folder by hand. Scans report
only; deletion is a separate, explicit action.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Set

from sqlalchemy.orm import Session

from app.database import utcnow
from app.errors import AttachmentError, InvalidInput, Unsupported
from app.models.attachment import Attachment
from app.models.integration import UserDriveAuth
from app.services.storage_provider import RemoteFile, StorageProvider

logger = logging.getLogger(__name__)


@dataclass
class OrphanFile:
    remote_id: str
    filename: str
    size: Optional[int]
    detected_at: datetime
    user_id: Optional[str] = None


class OrphanReconciler:
    def __init__(self, db: Session, storage: StorageProvider):
        self.db = db
        self.storage = storage

    def _tracked_ids(self) -> Set[str]:
        # Any status: REMOVED rows still own their file until purged.
        return {row[0] for row in self.db.query(Attachment.drive_file_id).all()}

    def _connected_users(self) -> List[str]:
        return [row[0] for row in self.db.query(UserDriveAuth.user_id).order_by(UserDriveAuth.user_id).all()]

    def scan_orphans(self, user_id: Optional[str] = None) -> List[OrphanFile]:
        """Remote files minus tracked ids, for one user or every connected user."""
        detected_at = utcnow()
        remote: List[tuple] = [(f, None) for f in self.storage.list_all_files()]

        users = [user_id] if user_id else self._connected_users()
        for uid in users:
            try:
                files: List[RemoteFile] = self.storage.list_user_files(uid)
            except AttachmentError as exc:
                logger.warning("Orphan scan: could not list files for user %s: %s", uid, exc)
                continue
            remote.extend((f, uid) for f in files)

        tracked = self._tracked_ids()
        orphans = []
        reported = set()
        for f, owner in remote:
            if f.remote_id in tracked or f.remote_id in reported:
                continue
            reported.add(f.remote_id)
            orphans.append(
                OrphanFile(
                    remote_id=f.remote_id,
                    filename=f.filename,
                    size=f.size,
                    detected_at=detected_at,
                    user_id=owner,
                )
            )

        logger.info(
            "Orphan scan: %d remote files across %d users, %d orphans",
            len(remote), len(users), len(orphans),
        )
        return orphans

    def delete_orphan(self, remote_id: str, user_id: str) -> None:
        """Irreversibly delete an untracked remote file from *user_id*'s storage."""
        exists = (
            self.db.query(Attachment.id).filter(Attachment.drive_file_id == remote_id).first()
        )
        if exists is not None:
            raise InvalidInput(f"File {remote_id} is tracked by an attachment and is not an orphan")
        self.storage.delete(user_id, remote_id)
        logger.warning("Deleted orphan file %s for user %s", remote_id, user_id)

    def adopt_orphan(self, remote_id: str, record_type: str = None, record_id: str = None):
        raise Unsupported(
            "Adopting orphan files is not supported with per-user Drive credentials"
        )
