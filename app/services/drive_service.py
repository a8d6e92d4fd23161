"""Google Drive storage provider.

Files live in a single root folder per user (``GOOGLE_DRIVE_ROOT_FOLDER_NAME``)
inside that user's own Drive, reached with the ``drive.file`` scope so the
app only ever sees files it created.
"""
import io
import logging
import threading
from functools import lru_cache
from typing import Dict, List, Optional

import httplib2

from app.config import get_settings
from app.errors import UpstreamError
from app.services.oauth_service import DriveOAuthService, get_oauth_service
from app.services.storage_provider import (
    RemoteFile,
    StorageProvider,
    UploadContext,
    UploadResult,
)

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FILE_FIELDS = "id,name,mimeType,size,webViewLink"
LIST_PAGE_SIZE = 100


def _escape_query(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _default_link(file_id: str) -> str:
    return f"https://drive.google.com/file/d/{file_id}/view"


def _build_service(access_token: str):
    """Drive v3 client bound to a short-lived access token."""
    from google.oauth2.credentials import Credentials
    from googleapiclient.discovery import build

    creds = Credentials(token=access_token)
    return build("drive", "v3", credentials=creds, cache_discovery=False)


def _is_not_found(exc: Exception) -> bool:
    from googleapiclient.errors import HttpError

    return isinstance(exc, HttpError) and getattr(exc.resp, "status", None) == 404


class GoogleDriveProvider(StorageProvider):
    def __init__(
        self,
        oauth: DriveOAuthService,
        root_folder_name: Optional[str] = None,
        service_builder=None,
    ):
        self._oauth = oauth
        self._root_folder_name = root_folder_name or get_settings().GOOGLE_DRIVE_ROOT_FOLDER_NAME
        self._service_builder = service_builder or _build_service
        self._root_cache: Dict[str, str] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _service(self, user_id: str):
        return self._service_builder(self._oauth.get_access_token(user_id))

    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock

    def _execute(self, request, action: str):
        """Run a googleapiclient request, mapping transport and API failures to UpstreamError."""
        from googleapiclient.errors import HttpError

        try:
            return request.execute()
        except (HttpError, httplib2.HttpLib2Error, OSError) as exc:
            logger.error("Drive %s failed: %s", action, exc)
            raise UpstreamError(f"Google Drive {action} failed: {exc}") from exc

    @staticmethod
    def _to_result(meta: dict, filename: str, mime_type: str, size: int) -> UploadResult:
        file_id = meta["id"]
        return UploadResult(
            remote_id=file_id,
            link=meta.get("webViewLink") or _default_link(file_id),
            mime_type=meta.get("mimeType") or mime_type,
            size=int(meta["size"]) if meta.get("size") is not None else size,
            filename=meta.get("name") or filename,
        )

    # ------------------------------------------------------------------
    # StorageProvider
    # ------------------------------------------------------------------

    def ensure_user_root(self, user_id: str) -> str:
        return self._resolve_root(user_id, create=True)

    def find_user_root(self, user_id: str) -> Optional[str]:
        """Id of the user's root folder, or None when it was never created."""
        return self._resolve_root(user_id, create=False)

    def _resolve_root(self, user_id: str, create: bool) -> Optional[str]:
        cached = self._root_cache.get(user_id)
        if cached:
            return cached
        with self._user_lock(user_id):
            # Another thread may have resolved it while we waited.
            cached = self._root_cache.get(user_id)
            if cached:
                return cached

            service = self._service(user_id)
            query = (
                f"name='{_escape_query(self._root_folder_name)}' and "
                f"mimeType='{FOLDER_MIME_TYPE}' and trashed=false"
            )
            results = self._execute(
                service.files().list(
                    q=query,
                    fields="files(id,name,createdTime)",
                    orderBy="createdTime",
                    spaces="drive",
                ),
                "folder lookup",
            )
            folders = results.get("files", [])
            if folders:
                # Earlier races may have left duplicates; the oldest wins.
                folder_id = folders[0]["id"]
            elif not create:
                return None
            else:
                meta = {"name": self._root_folder_name, "mimeType": FOLDER_MIME_TYPE}
                folder = self._execute(
                    service.files().create(body=meta, fields="id"), "folder create"
                )
                folder_id = folder["id"]
                logger.info("Created Drive root folder %r for user %s", self._root_folder_name, user_id)

            self._root_cache[user_id] = folder_id
            return folder_id

    def upload(
        self,
        user_id: str,
        content: bytes,
        filename: str,
        mime_type: str,
        context: Optional[UploadContext] = None,
    ) -> UploadResult:
        from googleapiclient.http import MediaIoBaseUpload

        parent_id = self.ensure_user_root(user_id)
        service = self._service(user_id)
        meta = {"name": filename, "parents": [parent_id]}
        if context is not None:
            meta["appProperties"] = context.as_properties()
        media = MediaIoBaseUpload(io.BytesIO(content), mimetype=mime_type, resumable=False)
        created = self._execute(
            service.files().create(body=meta, media_body=media, fields=FILE_FIELDS),
            "upload",
        )
        logger.info("Uploaded %s to Drive as %s for user %s", filename, created.get("id"), user_id)
        return self._to_result(created, filename, mime_type, len(content))

    def replace(
        self,
        user_id: str,
        remote_id: str,
        content: bytes,
        filename: str,
        mime_type: str,
        context: Optional[UploadContext] = None,
    ) -> UploadResult:
        # New object every time; the old one stays until the retention
        # purger deletes it with its REMOVED row.
        return self.upload(user_id, content, filename, mime_type, context)

    def delete(self, user_id: str, remote_id: str) -> None:
        from googleapiclient.errors import HttpError

        service = self._service(user_id)
        try:
            service.files().delete(fileId=remote_id).execute()
        except HttpError as exc:
            if _is_not_found(exc):
                logger.info("Drive file %s already gone", remote_id)
                return
            logger.error("Drive delete of %s failed: %s", remote_id, exc)
            raise UpstreamError(f"Google Drive delete failed: {exc}") from exc
        except (httplib2.HttpLib2Error, OSError) as exc:
            logger.error("Drive delete of %s failed: %s", remote_id, exc)
            raise UpstreamError(f"Google Drive delete failed: {exc}") from exc
        logger.info("Deleted Drive file %s for user %s", remote_id, user_id)

    def list_user_files(self, user_id: str) -> List[RemoteFile]:
        # Listing never creates the root folder.
        parent_id = self.find_user_root(user_id)
        if parent_id is None:
            return []
        service = self._service(user_id)
        query = f"'{parent_id}' in parents and trashed=false"
        files: List[RemoteFile] = []
        page_token = None
        while True:
            page = self._execute(
                service.files().list(
                    q=query,
                    fields="nextPageToken, files(id,name,size,mimeType,appProperties)",
                    pageSize=LIST_PAGE_SIZE,
                    pageToken=page_token,
                    spaces="drive",
                ),
                "list",
            )
            for item in page.get("files", []):
                files.append(
                    RemoteFile(
                        remote_id=item["id"],
                        filename=item.get("name", ""),
                        size=int(item["size"]) if item.get("size") is not None else None,
                        mime_type=item.get("mimeType"),
                        properties=item.get("appProperties") or {},
                    )
                )
            page_token = page.get("nextPageToken")
            if not page_token:
                break
        return files


@lru_cache()
def get_storage_provider() -> StorageProvider:
    """Process-wide provider so the root folder cache is shared."""
    return GoogleDriveProvider(get_oauth_service())
