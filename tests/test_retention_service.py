"""Tests for the retention purge of soft-removed attachments."""
from datetime import timedelta
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from app.database import utcnow
from app.models.attachment import Attachment, AttachmentStatus
from app.services.attachment_service import AttachmentService
from app.services.retention_service import RetentionPurger
from app.services.upload_service import IncomingFile


def _file(content):
    return IncomingFile(filename="r.pdf", mime_type="application/pdf", content=content)


def _expire(db, attachment, days_ago=1):
    attachment.retention_expires_at = utcnow() - timedelta(days=days_ago)
    db.commit()


def test_purge_deletes_only_expired_removed_rows(db, storage, expense):
    service = AttachmentService(db, storage)
    active = service.upload("expense", expense.id, _file(b"active"))
    expired = service.remove(service.upload("expense", expense.id, _file(b"expired")).id)
    fresh = service.remove(service.upload("expense", expense.id, _file(b"fresh")).id)
    _expire(db, expired)

    result = RetentionPurger(db, storage).purge()

    assert (result.examined, result.purged, result.drive_errors, result.db_errors) == (1, 1, 0, 0)
    assert storage.deleted == [expired.drive_file_id]
    remaining = {a.id for a in db.query(Attachment).all()}
    assert remaining == {active.id, fresh.id}


def test_purge_with_nothing_expired(db, storage):
    result = RetentionPurger(db, storage).purge()
    assert result.as_dict() == {"examined": 0, "purged": 0, "drive_errors": 0, "db_errors": 0}


def test_purge_continues_after_drive_error(db, storage, expense):
    service = AttachmentService(db, storage)
    a = service.remove(service.upload("expense", expense.id, _file(b"a")).id)
    b = service.remove(service.upload("expense", expense.id, _file(b"b")).id)
    _expire(db, a, days_ago=2)
    _expire(db, b, days_ago=1)
    storage.fail_deletes.add(a.drive_file_id)

    result = RetentionPurger(db, storage).purge()

    assert result.examined == 2
    assert result.drive_errors == 1
    # Metadata is deleted even when the remote delete failed.
    assert result.purged == 2
    assert db.query(Attachment).count() == 0


def test_purge_counts_db_errors_and_keeps_going(db, storage, expense):
    service = AttachmentService(db, storage)
    a = service.remove(service.upload("expense", expense.id, _file(b"a")).id)
    b = service.remove(service.upload("expense", expense.id, _file(b"b")).id)
    _expire(db, a, days_ago=2)
    _expire(db, b, days_ago=1)

    real_commit = db.commit
    calls = {"n": 0}

    def _flaky_commit():
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("DELETE", {}, Exception("database is locked"))
        real_commit()

    with patch.object(db, "commit", side_effect=_flaky_commit):
        result = RetentionPurger(db, storage).purge()

    assert result.examined == 2
    assert result.db_errors == 1
    assert result.purged == 1
    remaining = db.query(Attachment).all()
    assert [r.id for r in remaining] == [a.id]


def test_purging_a_replacement_clears_back_reference(db, storage, expense):
    service = AttachmentService(db, storage)
    old = service.upload("expense", expense.id, _file(b"v1"))
    new = service.replace(old.id, _file(b"v2"))
    service.remove(new.id)
    _expire(db, new)

    result = RetentionPurger(db, storage).purge()

    assert result.purged == 1
    assert result.db_errors == 0
    assert db.get(Attachment, new.id) is None
    db.refresh(old)
    assert old.status == AttachmentStatus.REMOVED
    assert old.replaced_by_attachment_id is None
