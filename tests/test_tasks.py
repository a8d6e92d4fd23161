"""Tests for the Celery beat schedule and the purge / orphan-scan tasks."""
from datetime import timedelta
from unittest.mock import patch

import pytest

from app.database import utcnow
from app.services.attachment_service import AttachmentService
from app.services.upload_service import IncomingFile
from app.tasks.celery_app import _crontab, celery_app
from app.tasks.cleanup import purge_expired_attachments
from app.tasks.reconcile import scan_orphans


def test_crontab_parses_five_fields():
    schedule = _crontab("15 2 * * 0")
    assert schedule.minute == {15}
    assert schedule.hour == {2}
    assert schedule.day_of_week == {0}


@pytest.mark.parametrize("expr", ["0 2 * *", "0 2 * * * *", ""])
def test_crontab_rejects_wrong_field_count(expr):
    with pytest.raises(ValueError):
        _crontab(expr)


def test_beat_schedule_registers_both_jobs():
    schedule = celery_app.conf.beat_schedule
    assert schedule["purge-expired-attachments"]["task"] == "app.tasks.cleanup.purge_expired_attachments"
    assert schedule["orphan-scan"]["task"] == "app.tasks.reconcile.scan_orphans"
    assert schedule["purge-expired-attachments"]["schedule"].hour == {2}
    assert schedule["orphan-scan"]["schedule"].day_of_week == {0}


def _file(content):
    return IncomingFile(filename="r.pdf", mime_type="application/pdf", content=content)


def _removed(db, storage, expense, content, expires_at):
    service = AttachmentService(db, storage)
    row = service.remove(service.upload("expense", expense.id, _file(content)).id)
    row.retention_expires_at = expires_at
    db.commit()
    return row


def test_purge_task_reports_counts(db, session_factory, storage, expense):
    old = _removed(db, storage, expense, b"old", utcnow() - timedelta(days=1))
    _removed(db, storage, expense, b"new", utcnow() + timedelta(days=10))

    with patch("app.database.SessionLocal", session_factory), patch(
        "app.services.drive_service.get_storage_provider", return_value=storage
    ):
        result = purge_expired_attachments.run()

    assert result == {"status": "ok", "examined": 1, "purged": 1, "drive_errors": 0, "db_errors": 0}
    assert storage.deleted == [old.drive_file_id]


def test_orphan_scan_task_lists_untracked_files(session_factory, storage):
    storage.add_untracked("user-1", "stray-1", filename="stray.pdf", size=4)

    with patch("app.database.SessionLocal", session_factory), patch(
        "app.services.drive_service.get_storage_provider", return_value=storage
    ):
        result = scan_orphans.run(user_id="user-1")

    assert result["status"] == "ok"
    assert result["count"] == 1
    assert result["orphans"][0]["remote_id"] == "stray-1"
    assert result["orphans"][0]["user_id"] == "user-1"
