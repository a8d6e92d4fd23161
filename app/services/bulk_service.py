"""Bulk import orchestrator.

A bulk import is a ``BulkImportJob`` row plus a background run on the job
worker pool. Files are taken in batches of ``BULK_CONCURRENCY``; inside a
batch they are classified in input order and the uploads run concurrently:

* checksum already seen in this job  -> duplicate
* no target record id                -> skipped
* lifecycle upload succeeded         -> uploaded
* lifecycle upload raised            -> error (the job carries on)

Counters are written once per batch, so a status read lags by at most one
batch. Cancellation is cooperative and takes effect at the next batch or
file boundary; uploads already in flight finish.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from functools import lru_cache, partial
from typing import Callable, Dict, List, Optional

from app.config import get_settings
from app.database import SessionLocal, utcnow
from app.errors import InvalidInput
from app.models.job import ACTIVE_JOB_STATUSES, BulkImportJob, BulkJobStatus
from app.models.record import RecordType
from app.services.storage_provider import StorageProvider
from app.services.upload_service import IncomingFile
from app.utils.checksum import sha256_hex

logger = logging.getLogger(__name__)

UPLOADED = "uploaded"
DUPLICATE = "duplicate"
SKIPPED = "skipped"
ERROR = "error"


@dataclass
class BulkFile:
    filename: str
    mime_type: str
    content: bytes
    record_type: RecordType = RecordType.expense
    record_id: Optional[str] = None

    def as_incoming(self) -> IncomingFile:
        return IncomingFile(filename=self.filename, mime_type=self.mime_type, content=self.content)


@dataclass
class BulkCounters:
    uploaded: int = 0
    duplicate: int = 0
    error: int = 0
    skipped: int = 0

    def add(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)

    def as_columns(self) -> dict:
        return {
            "uploaded_count": self.uploaded,
            "duplicate_count": self.duplicate,
            "error_count": self.error,
            "skipped_count": self.skipped,
        }


class BulkImportService:
    def __init__(
        self,
        session_factory=SessionLocal,
        storage: Optional[StorageProvider] = None,
        upload_fn: Optional[Callable[[BulkFile, str], object]] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        concurrency: Optional[int] = None,
    ):
        settings = get_settings()
        self._session_factory = session_factory
        self._storage = storage
        self._upload_fn = upload_fn or self._default_upload
        self._executor = executor or ThreadPoolExecutor(
            max_workers=settings.BULK_MAX_CONCURRENT_JOBS, thread_name_prefix="bulk-import"
        )
        self.concurrency = max(1, concurrency or settings.BULK_CONCURRENCY)
        self._futures: Dict[str, Future] = {}
        self._cancel_events: Dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start_bulk_import(self, user_id: str, files: List[BulkFile]) -> dict:
        """Create a running job and hand its files to the worker pool."""
        if not files:
            raise InvalidInput("No files provided")

        with self._session_factory() as db:
            job = BulkImportJob(
                initiated_by_user_id=user_id,
                total_files=len(files),
                status=BulkJobStatus.running,
                started_at=utcnow(),
            )
            db.add(job)
            db.commit()
            job_id = job.id

        cancel_event = threading.Event()
        with self._lock:
            self._cancel_events[job_id] = cancel_event
            future = self._executor.submit(self.run_job, job_id, list(files), cancel_event)
            self._futures[job_id] = future
        future.add_done_callback(partial(self._on_job_done, job_id))

        logger.info("Started bulk job %s: %d files for user %s", job_id, len(files), user_id)
        return {"job_id": job_id, "status": BulkJobStatus.running.value, "total_files": len(files)}

    def run_job(
        self,
        job_id: str,
        files: List[BulkFile],
        cancel_event: Optional[threading.Event] = None,
    ) -> BulkCounters:
        """Process *files* for *job_id* batch by batch and return the final counters."""
        if cancel_event is None:
            cancel_event = self._cancel_events.get(job_id) or threading.Event()
        counters = BulkCounters()
        seen = set()

        for batch_no, start in enumerate(range(0, len(files), self.concurrency), start=1):
            if self._is_canceled(job_id, cancel_event):
                logger.info("Bulk job %s canceled before batch %d", job_id, batch_no)
                break
            batch = files[start:start + self.concurrency]
            logger.info("Bulk job %s: processing batch %d (%d files)", job_id, batch_no, len(batch))

            to_upload = []
            for bulk_file in batch:
                if cancel_event.is_set():
                    break
                checksum = sha256_hex(bulk_file.content)
                if checksum in seen:
                    logger.debug("Bulk job %s: duplicate %s", job_id, bulk_file.filename)
                    counters.add(DUPLICATE)
                    continue
                seen.add(checksum)
                if not bulk_file.record_id:
                    logger.debug("Bulk job %s: skipped %s (no record id)", job_id, bulk_file.filename)
                    counters.add(SKIPPED)
                    continue
                to_upload.append((bulk_file, checksum))

            if to_upload:
                with ThreadPoolExecutor(
                    max_workers=len(to_upload), thread_name_prefix=f"bulk-{job_id[:8]}"
                ) as pool:
                    outcomes = list(
                        pool.map(
                            lambda item: self._upload_one(job_id, item[0], item[1], cancel_event),
                            to_upload,
                        )
                    )
                for outcome in outcomes:
                    if outcome is not None:
                        counters.add(outcome)

            self._persist_counters(job_id, counters)
            logger.info(
                "Bulk job %s progress: uploaded=%d duplicates=%d errors=%d skipped=%d",
                job_id, counters.uploaded, counters.duplicate, counters.error, counters.skipped,
            )

        self._finish(job_id, counters)
        return counters

    def get_job_status(self, job_id: str) -> Optional[BulkImportJob]:
        with self._session_factory() as db:
            return db.get(BulkImportJob, job_id)

    def cancel_job(self, job_id: str) -> Optional[BulkImportJob]:
        """Cancel a pending or running job; any other job is returned unchanged."""
        with self._session_factory() as db:
            job = db.get(BulkImportJob, job_id)
            if job is None:
                return None
            if job.status not in ACTIVE_JOB_STATUSES:
                return job
            job.status = BulkJobStatus.canceled
            job.completed_at = utcnow()
            db.commit()

        event = self._cancel_events.get(job_id)
        if event is not None:
            event.set()
        logger.info("Bulk job %s canceled", job_id)
        return job

    def job_future(self, job_id: str) -> Optional[Future]:
        """Completion handle of a job started by this process."""
        return self._futures.get(job_id)

    def shutdown(self, wait: bool = True) -> None:
        for event in list(self._cancel_events.values()):
            event.set()
        self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _default_upload(self, bulk_file: BulkFile, checksum: str):
        from app.services.attachment_service import AttachmentService

        if self._storage is None:
            from app.services.drive_service import get_storage_provider

            self._storage = get_storage_provider()
        # Worker threads never share a session.
        with self._session_factory() as db:
            return AttachmentService(db, self._storage).upload(
                bulk_file.record_type, bulk_file.record_id, bulk_file.as_incoming(), checksum
            )

    def _upload_one(
        self,
        job_id: str,
        bulk_file: BulkFile,
        checksum: str,
        cancel_event: threading.Event,
    ) -> Optional[str]:
        if cancel_event.is_set():
            return None
        try:
            self._upload_fn(bulk_file, checksum)
        except Exception as exc:
            logger.error(
                "Bulk job %s: error uploading %s: %s", job_id, bulk_file.filename, exc
            )
            return ERROR
        logger.debug(
            "Bulk job %s: uploaded %s -> %s:%s",
            job_id, bulk_file.filename, bulk_file.record_type, bulk_file.record_id,
        )
        return UPLOADED

    def _is_canceled(self, job_id: str, cancel_event: threading.Event) -> bool:
        if cancel_event.is_set():
            return True
        with self._session_factory() as db:
            job = db.get(BulkImportJob, job_id)
            if job is not None and job.status == BulkJobStatus.canceled:
                # Canceled by another service instance.
                cancel_event.set()
                return True
        return False

    def _persist_counters(self, job_id: str, counters: BulkCounters) -> None:
        with self._session_factory() as db:
            db.query(BulkImportJob).filter(BulkImportJob.id == job_id).update(
                counters.as_columns(), synchronize_session=False
            )
            db.commit()

    def _finish(self, job_id: str, counters: BulkCounters) -> None:
        with self._session_factory() as db:
            values = counters.as_columns()
            values.update(status=BulkJobStatus.completed, completed_at=utcnow())
            updated = (
                db.query(BulkImportJob)
                .filter(
                    BulkImportJob.id == job_id,
                    BulkImportJob.status.in_(ACTIVE_JOB_STATUSES),
                )
                .update(values, synchronize_session=False)
            )
            if not updated:
                # Canceled jobs keep their status but still get final counters.
                db.query(BulkImportJob).filter(BulkImportJob.id == job_id).update(
                    counters.as_columns(), synchronize_session=False
                )
            db.commit()
        if updated:
            logger.info(
                "Bulk job %s completed: %d uploaded, %d duplicates, %d errors, %d skipped",
                job_id, counters.uploaded, counters.duplicate, counters.error, counters.skipped,
            )

    def _on_job_done(self, job_id: str, future: Future) -> None:
        with self._lock:
            self._cancel_events.pop(job_id, None)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is None:
            return
        logger.error("Bulk job %s failed: %s", job_id, exc, exc_info=exc)
        with self._session_factory() as db:
            db.query(BulkImportJob).filter(
                BulkImportJob.id == job_id,
                BulkImportJob.status.in_(ACTIVE_JOB_STATUSES),
            ).update(
                {
                    "status": BulkJobStatus.failed,
                    "completed_at": utcnow(),
                    "error_message": str(exc)[:2000],
                },
                synchronize_session=False,
            )
            db.commit()


@lru_cache()
def get_bulk_import_service() -> BulkImportService:
    return BulkImportService()
