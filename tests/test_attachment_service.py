"""Tests for the attachment lifecycle: upload, replace, remove, list."""
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from app.database import utcnow
from app.errors import InvalidInput, NotConnected, NotFound, QuotaExceeded
from app.models.attachment import Attachment, AttachmentStatus
from app.models.record import RecordType
from app.services.attachment_service import AttachmentService
from app.services.limit_service import LimitChecker
from app.services.upload_service import IncomingFile
from app.utils.checksum import sha256_hex


def _file(content=b"%PDF-1.4 receipt", name="receipt.pdf"):
    return IncomingFile(filename=name, mime_type="application/pdf", content=content)


# ---------------------------------------------------------------------------
# upload
# ---------------------------------------------------------------------------

def test_upload_creates_active_row_with_denormalized_fields(db, storage, expense, pdf_file):
    att = AttachmentService(db, storage).upload("expense", expense.id, pdf_file)

    assert att.status == AttachmentStatus.ACTIVE
    assert att.linked_expense_id == expense.id
    assert att.linked_income_id is None
    assert att.uploaded_by_user_id == "user-1"
    assert att.record_type == RecordType.expense
    assert att.record_date == expense.date
    assert att.amount_minor_units == 4250
    assert att.category_id == "cat-food"
    assert att.checksum == sha256_hex(pdf_file.content)
    assert att.original_filename == "receipt.pdf"
    assert att.size_bytes == len(pdf_file.content)
    assert att.retention_expires_at is None
    assert "user-1" in storage.roots


def test_upload_to_income_links_income_only(db, storage, income, pdf_file):
    att = AttachmentService(db, storage).upload(RecordType.income, income.id, pdf_file)
    assert att.linked_income_id == income.id
    assert att.linked_expense_id is None
    assert att.amount_minor_units == 150000


def test_upload_records_context_on_remote_object(db, storage, expense, pdf_file):
    att = AttachmentService(db, storage).upload("expense", expense.id, pdf_file)
    remote = storage.files["user-1"][att.drive_file_id]
    assert remote.properties == {
        "recordType": "expense",
        "recordId": expense.id,
        "checksum": att.checksum,
    }


def test_upload_uses_supplied_checksum(db, storage, expense, pdf_file):
    supplied = "A" * 64
    att = AttachmentService(db, storage).upload("expense", expense.id, pdf_file, checksum=supplied)
    assert att.checksum == "a" * 64


def test_upload_rejects_malformed_checksum(db, storage, expense, pdf_file):
    with pytest.raises(InvalidInput):
        AttachmentService(db, storage).upload("expense", expense.id, pdf_file, checksum="abc")


def test_upload_without_file_fails(db, storage, expense):
    with pytest.raises(InvalidInput):
        AttachmentService(db, storage).upload("expense", expense.id, None)


def test_upload_unknown_record_type_fails(db, storage, expense, pdf_file):
    with pytest.raises(InvalidInput):
        AttachmentService(db, storage).upload("invoice", expense.id, pdf_file)


def test_upload_missing_record_fails_without_remote_call(db, pdf_file):
    storage = MagicMock()
    with pytest.raises(NotFound):
        AttachmentService(db, storage).upload("expense", "does-not-exist", pdf_file)
    storage.upload.assert_not_called()


def test_upload_propagates_not_connected(db, disconnected_storage, expense, pdf_file):
    storage = disconnected_storage
    with pytest.raises(NotConnected):
        AttachmentService(db, storage).upload("expense", expense.id, pdf_file)
    assert db.query(Attachment).count() == 0


def test_quota_allows_five_and_rejects_sixth(db, storage, expense):
    service = AttachmentService(db, storage)
    for i in range(5):
        service.upload("expense", expense.id, _file(content=f"file {i}".encode()))

    with pytest.raises(QuotaExceeded):
        service.upload("expense", expense.id, _file(content=b"file 6"))
    assert len(service.list_for_record("expense", expense.id)) == 5


def test_quota_ignores_removed_attachments(db, storage, expense):
    service = AttachmentService(db, storage)
    first = service.upload("expense", expense.id, _file(content=b"first"))
    for i in range(4):
        service.upload("expense", expense.id, _file(content=f"more {i}".encode()))
    service.remove(first.id)

    service.upload("expense", expense.id, _file(content=b"fits again"))
    assert len(service.list_for_record("expense", expense.id)) == 5


def test_limit_checker_custom_max(db, storage, expense):
    service = AttachmentService(db, storage, LimitChecker(db, max_per_record=1))
    service.upload("expense", expense.id, _file())
    with pytest.raises(QuotaExceeded):
        service.upload("expense", expense.id, _file(content=b"second"))


# ---------------------------------------------------------------------------
# remove
# ---------------------------------------------------------------------------

def test_remove_sets_removed_with_90_day_retention(db, storage, expense, pdf_file):
    service = AttachmentService(db, storage)
    att = service.upload("expense", expense.id, pdf_file)

    removed = service.remove(att.id)

    assert removed.status == AttachmentStatus.REMOVED
    delta = removed.retention_expires_at - utcnow()
    assert timedelta(days=89) < delta <= timedelta(days=90)
    # Remote file is kept until the purge
    assert att.drive_file_id in storage.files["user-1"]
    assert storage.deleted == []


def test_remove_twice_fails(db, storage, expense, pdf_file):
    service = AttachmentService(db, storage)
    att = service.upload("expense", expense.id, pdf_file)
    service.remove(att.id)
    with pytest.raises(InvalidInput):
        service.remove(att.id)


def test_remove_unknown_fails(db, storage):
    with pytest.raises(NotFound):
        AttachmentService(db, storage).remove("missing")


# ---------------------------------------------------------------------------
# replace
# ---------------------------------------------------------------------------

def test_replace_supersedes_old_attachment(db, storage, expense, pdf_file):
    service = AttachmentService(db, storage)
    old = service.upload("expense", expense.id, pdf_file)

    new = service.replace(old.id, _file(content=b"%PDF-1.4 corrected", name="fixed.pdf"))

    db.refresh(old)
    assert new.id != old.id
    assert new.status == AttachmentStatus.ACTIVE
    assert new.linked_expense_id == expense.id
    assert new.original_filename == "fixed.pdf"
    assert new.drive_file_id != old.drive_file_id
    assert old.status == AttachmentStatus.REMOVED
    assert old.replaced_by_attachment_id == new.id
    assert old.retention_expires_at is not None
    assert [a.id for a in service.list_for_record("expense", expense.id)] == [new.id]


def test_replace_allowed_at_quota(db, storage, expense):
    service = AttachmentService(db, storage)
    rows = [service.upload("expense", expense.id, _file(content=f"f{i}".encode())) for i in range(5)]
    replacement = service.replace(rows[0].id, _file(content=b"replacement"))
    assert replacement.status == AttachmentStatus.ACTIVE
    assert len(service.list_for_record("expense", expense.id)) == 5


def test_replace_removed_attachment_fails(db, storage, expense, pdf_file):
    service = AttachmentService(db, storage)
    att = service.upload("expense", expense.id, pdf_file)
    service.remove(att.id)
    with pytest.raises(InvalidInput):
        service.replace(att.id, _file(content=b"new"))


def test_replace_without_file_fails(db, storage, expense, pdf_file):
    service = AttachmentService(db, storage)
    att = service.upload("expense", expense.id, pdf_file)
    with pytest.raises(InvalidInput):
        service.replace(att.id, None)


def test_replace_unknown_fails(db, storage):
    with pytest.raises(NotFound):
        AttachmentService(db, storage).replace("missing", _file())


def test_replace_commits_new_row_before_retiring_old(db, storage, expense, pdf_file):
    service = AttachmentService(db, storage)
    old = service.upload("expense", expense.id, pdf_file)

    commits = []
    real_commit = db.commit

    def _recording_commit():
        commits.append((old.status, len(db.new)))
        real_commit()

    db.commit = _recording_commit
    try:
        new = service.replace(old.id, _file(content=b"v2"))
    finally:
        db.commit = real_commit

    # First commit inserts the new row while the old one is still ACTIVE.
    assert commits == [(AttachmentStatus.ACTIVE, 1), (AttachmentStatus.REMOVED, 0)]
    assert new.status == AttachmentStatus.ACTIVE


# ---------------------------------------------------------------------------
# list / invariants
# ---------------------------------------------------------------------------

def test_list_excludes_removed_and_orders_by_created_at(db, storage, expense):
    service = AttachmentService(db, storage)
    a = service.upload("expense", expense.id, _file(content=b"a"))
    b = service.upload("expense", expense.id, _file(content=b"b"))
    c = service.upload("expense", expense.id, _file(content=b"c"))
    a.created_at = utcnow() - timedelta(minutes=3)
    b.created_at = utcnow() - timedelta(minutes=2)
    c.created_at = utcnow() - timedelta(minutes=1)
    db.commit()
    service.remove(b.id)

    assert [x.id for x in service.list_for_record("expense", expense.id)] == [a.id, c.id]


def test_list_for_other_record_type_is_separate(db, storage, expense, income):
    service = AttachmentService(db, storage)
    service.upload("expense", expense.id, _file(content=b"e"))
    assert service.list_for_record("income", income.id) == []


def test_single_record_constraint_enforced_by_database(db, expense, income):
    row = Attachment(
        linked_expense_id=expense.id,
        linked_income_id=income.id,
        drive_file_id="x",
        mime_type="application/pdf",
        size_bytes=1,
        original_filename="x.pdf",
        checksum="0" * 64,
        uploaded_by_user_id="user-1",
        record_type=RecordType.expense,
    )
    db.add(row)
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
