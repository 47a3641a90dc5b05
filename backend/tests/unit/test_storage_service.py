import pytest

from peertrack.core.errors import ValidationError
from peertrack.services.storage_service import ManuscriptStorage


def test_save_uploads_and_returns_metadata(fake_db):
    storage = ManuscriptStorage(fake_db, bucket="manuscripts")
    stored = storage.save(owner_id="u1", filename="My Paper (final).pdf", content=b"%PDF-1.4")

    assert stored.file_name == "My Paper (final).pdf"
    assert stored.file_url.startswith("manuscripts/manuscripts/u1/")
    assert stored.file_url.endswith("_My_Paper_final_.pdf")
    assert stored.content_type == "application/pdf"
    assert stored.size_bytes == 8

    assert "manuscripts" in fake_db.storage.buckets
    [(bucket, path)] = list(fake_db.storage.objects)
    assert bucket == "manuscripts"
    content, opts = fake_db.storage.objects[(bucket, path)]
    assert content == b"%PDF-1.4"
    assert opts["content-type"] == "application/pdf"
    assert opts["upsert"] == "false"


def test_docx_is_accepted(fake_db):
    storage = ManuscriptStorage(fake_db, bucket="papers")
    stored = storage.save(owner_id="u1", filename="draft.DOCX", content=b"PK")
    assert stored.content_type.endswith("wordprocessingml.document")


@pytest.mark.parametrize(
    "filename,content,message",
    [
        (None, b"x", "Please upload"),
        ("paper.pdf", b"", "Please upload"),
        ("paper.txt", b"x", "Only PDF or DOCX"),
        ("paper.pdf.exe", b"x", "Only PDF or DOCX"),
    ],
)
def test_validate_rejects_bad_files(fake_db, filename, content, message):
    storage = ManuscriptStorage(fake_db, bucket="manuscripts")
    with pytest.raises(ValidationError) as exc:
        storage.validate(filename, content)
    assert message in exc.value.message


def test_validate_enforces_size_limit(fake_db):
    storage = ManuscriptStorage(fake_db, bucket="manuscripts", max_upload_mb=1)
    with pytest.raises(ValidationError):
        storage.validate("big.pdf", b"0" * (1024 * 1024 + 1))
    assert storage.validate("ok.pdf", b"0" * 1024) == ".pdf"


def test_discard_removes_uploaded_object(fake_db):
    storage = ManuscriptStorage(fake_db, bucket="manuscripts")
    stored = storage.save(owner_id="u1", filename="paper.pdf", content=b"%PDF")
    assert stored.storage_path in {path for _bucket, path in fake_db.storage.objects}

    storage.discard(stored)
    assert fake_db.storage.objects == {}

    # 没有存储路径时什么都不做
    storage.discard(stored.model_copy(update={"storage_path": None}))
