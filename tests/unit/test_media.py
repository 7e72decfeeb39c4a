"""
Unit tests for the media library.

The service runs against the in-memory database and a LocalStorageClient
rooted in a temporary directory, so uploads, deletes and reconciliation
touch real files.
"""

import re
from datetime import datetime, timezone

import pytest

from astroadmin.core.media import (
    MediaRecord,
    MediaService,
    MediaValidationError,
    build_upload_path,
    guess_mime_type,
    validate_upload,
)
from astroadmin.infrastructure.mongo.client import MockMongoDatabase
from astroadmin.infrastructure.mongo.repositories import MediaRepository
from astroadmin.infrastructure.storage.client import LocalStorageClient, StorageError

MB = 1024 * 1024
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def db() -> MockMongoDatabase:
    return MockMongoDatabase("test")


@pytest.fixture
def storage(tmp_path) -> LocalStorageClient:
    return LocalStorageClient(tmp_path)


@pytest.fixture
def service(db, storage) -> MediaService:
    return MediaService(MediaRepository(db), storage, max_upload_bytes=MB)


def _write_upload(storage: LocalStorageClient, path: str, data: bytes = PNG_BYTES) -> None:
    full_path = storage.root / path.lstrip("/")
    full_path.parent.mkdir(parents=True, exist_ok=True)
    full_path.write_bytes(data)


# ---------------------------------------------------------------------------
# Validation and Naming
# ---------------------------------------------------------------------------

class TestValidateUpload:
    """Tests for upload validation rules."""

    def test_accepts_small_images(self):
        validate_upload("photo.png", "image/png", 1000, MB)

    def test_rejects_missing_file(self):
        with pytest.raises(MediaValidationError) as exc_info:
            validate_upload(None, None, 0, MB)
        assert exc_info.value.code == "NO_FILE"

    def test_rejects_non_images(self):
        with pytest.raises(MediaValidationError) as exc_info:
            validate_upload("notes.pdf", "application/pdf", 1000, MB)
        assert exc_info.value.code == "INVALID_FILE_TYPE"

    def test_rejects_oversized_files(self):
        with pytest.raises(MediaValidationError) as exc_info:
            validate_upload("big.jpg", "image/jpeg", MB + 1, MB)
        assert exc_info.value.code == "FILE_TOO_LARGE"
        assert "1MB" in exc_info.value.message

    def test_exact_limit_is_allowed(self):
        validate_upload("edge.jpg", "image/jpeg", MB, MB)


class TestUploadNaming:
    """Tests for upload file naming and placement."""

    def test_path_uses_year_month_and_timestamp(self):
        now = datetime(2024, 5, 3, 12, 0, tzinfo=timezone.utc)

        filename, path = build_upload_path("Holiday.JPG", now)

        millis = int(now.timestamp() * 1000)
        assert re.fullmatch(rf"ta-{millis}-[0-9a-z]{{6}}\.jpg", filename)
        assert path == f"/uploads/2024/05/{filename}"

    def test_same_millisecond_uploads_get_distinct_names(self):
        now = datetime(2024, 5, 3, 12, 0, tzinfo=timezone.utc)

        paths = {build_upload_path("logo.png", now)[1] for _ in range(20)}

        assert len(paths) == 20

    def test_name_without_extension(self):
        filename, path = build_upload_path("blob", datetime(2024, 12, 1, tzinfo=timezone.utc))
        assert "." not in filename
        assert path.startswith("/uploads/2024/12/")

    @pytest.mark.parametrize("name,expected", [
        ("a.png", "image/png"),
        ("a.JPEG", "image/jpeg"),
        ("a.webp", "image/webp"),
        ("a.bin", "application/octet-stream"),
    ])
    def test_mime_type_from_extension(self, name, expected):
        assert guess_mime_type(name) == expected


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class TestMediaService:
    """Tests for upload and delete keeping records and files in step."""

    def test_upload_stores_file_and_record(self, service, storage, db):
        record = service.upload("logo.png", "image/png", PNG_BYTES, uploaded_by="user_1_admin")

        assert record.media_id.startswith("media_")
        assert storage.exists(record.file_path)
        doc = db["media"].find_one({"media_id": record.media_id})
        assert doc["file_path"] == record.file_path
        assert doc["file_size"] == len(PNG_BYTES)
        assert doc["uploaded_by"] == "user_1_admin"
        assert doc["file_type"] == "admin_upload"

    def test_rejected_upload_writes_nothing(self, service, storage, db):
        with pytest.raises(MediaValidationError):
            service.upload("big.png", "image/png", b"x" * (MB + 1))

        assert storage.list_files() == []
        assert db["media"].count_documents({}) == 0

    def test_failed_record_insert_removes_stored_file(self, db, storage):
        class FailingRepository(MediaRepository):
            def create(self, record):
                raise RuntimeError("insert failed")

        service = MediaService(FailingRepository(db), storage, max_upload_bytes=MB)

        with pytest.raises(RuntimeError):
            service.upload("logo.png", "image/png", PNG_BYTES)

        assert storage.list_files() == []

    def test_delete_removes_record_and_file(self, service, storage, db):
        record = service.upload("logo.png", "image/png", PNG_BYTES)

        deleted = service.delete(record.media_id)

        assert deleted["media_id"] == record.media_id
        assert not storage.exists(record.file_path)
        assert db["media"].count_documents({}) == 0

    def test_delete_unknown_id_returns_none(self, service):
        assert service.delete("media_1_missing0") is None

    def test_delete_requires_media_id_format(self, service):
        with pytest.raises(MediaValidationError) as exc_info:
            service.delete("507f1f77bcf86cd799439011")
        assert exc_info.value.code == "INVALID_ID"

    def test_delete_succeeds_when_file_already_gone(self, service, storage, db):
        """A missing file doesn't block removing the record."""
        record = service.upload("logo.png", "image/png", PNG_BYTES)
        storage.delete(record.file_path)

        assert service.delete(record.media_id) is not None
        assert db["media"].count_documents({}) == 0


class TestReconciliation:
    """Tests for orphan cleanup, upload sync and the audit."""

    def test_cleanup_removes_only_records_without_files(self, service, storage, db):
        kept = service.upload("kept.png", "image/png", PNG_BYTES)
        repository = MediaRepository(db)
        repository.create(MediaRecord(
            media_id="media_1_orphan00",
            filename="gone.png",
            original_name="gone.png",
            file_path="/uploads/2023/01/gone.png",
            file_size=10,
            mime_type="image/png",
        ))
        # Records older than media ids are deleted by _id
        db["media"].insert_one({"filename": "legacy.png", "file_path": "/uploads/2022/01/legacy.png"})
        db["media"].insert_one({"filename": "cdn.png", "file_path": "https://cdn/x.png", "is_external": True})

        report = service.cleanup_orphaned()

        assert report.orphaned_found == 2
        assert report.cleaned_up == 2
        remaining = {doc.get("filename") for doc in db["media"].find({})}
        assert remaining == {kept.filename, "cdn.png"}

    def test_cleanup_dry_run_changes_nothing(self, service, db):
        db["media"].insert_one({"media_id": "media_1_orphan00", "file_path": "/uploads/x.png"})

        report = service.cleanup_orphaned(dry_run=True)

        assert report.cleaned_up == 1
        assert db["media"].count_documents({}) == 1

    def test_sync_adds_records_for_untracked_files(self, service, storage, db):
        service.upload("tracked.png", "image/png", PNG_BYTES)
        _write_upload(storage, "/uploads/2024/01/manual.webp")
        _write_upload(storage, "/uploads/2024/01/.DS_Store")

        report = service.sync_uploads()

        assert report.scanned == 2
        assert report.synced_paths == ["/uploads/2024/01/manual.webp"]
        doc = db["media"].find_one({"file_path": "/uploads/2024/01/manual.webp"})
        assert doc["mime_type"] == "image/webp"
        assert doc["file_size"] == len(PNG_BYTES)
        assert doc["media_id"].startswith("media_")

        assert service.sync_uploads().synced == 0

    def test_sync_matches_existing_records_by_filename(self, service, storage, db):
        """A file moved to another month keeps its existing record."""
        db["media"].insert_one({"media_id": "media_1_moved000", "filename": "moved.png",
                                "file_path": "/uploads/2023/01/moved.png"})
        _write_upload(storage, "/uploads/2024/02/moved.png")

        assert service.sync_uploads().synced == 0

    def test_sync_dry_run_writes_nothing(self, service, storage, db):
        _write_upload(storage, "/uploads/2024/01/manual.png")

        report = service.sync_uploads(dry_run=True)

        assert report.synced == 1
        assert db["media"].count_documents({}) == 0

    def test_audit_reports_both_directions(self, service, storage, db):
        good = service.upload("good.png", "image/png", PNG_BYTES)
        db["media"].insert_one({"media_id": "media_1_orphan00", "file_path": "/uploads/gone.png"})
        _write_upload(storage, "/uploads/2024/03/stray.png")

        audit = service.audit()

        assert [d["media_id"] for d in audit.valid] == [good.media_id]
        assert [d["media_id"] for d in audit.orphaned] == ["media_1_orphan00"]
        assert audit.untracked_files == ["/uploads/2024/03/stray.png"]

    def test_audit_matches_moved_files_by_filename(self, service, storage, db):
        """Audit and sync agree: a moved file with a known filename is tracked."""
        db["media"].insert_one({"media_id": "media_1_moved000", "filename": "moved.png",
                                "file_path": "/uploads/2023/01/moved.png"})
        _write_upload(storage, "/uploads/2024/02/moved.png")

        audit = service.audit()

        assert audit.untracked_files == []
        assert service.sync_uploads(dry_run=True).synced == 0


class TestLocalStorage:
    """Tests for the local file backend."""

    def test_paths_cannot_escape_the_root(self, storage):
        with pytest.raises(StorageError):
            storage.save("/../outside.png", b"x", "image/png")

    def test_list_files_without_uploads_dir(self, storage):
        assert storage.list_files() == []

    def test_delete_missing_file_returns_false(self, storage):
        assert storage.delete("/uploads/none.png") is False
