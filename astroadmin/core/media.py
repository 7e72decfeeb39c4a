"""
Media library rules.

The media collection is an index over files stored under /uploads/. The two
drift apart in both directions: records whose file was removed (orphans) and
files copied into the uploads tree without a record (untracked). MediaService
uploads and deletes keeping both sides in step, and reconciles them when
they have drifted.
"""

import logging
import posixpath
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from .ids import generate_media_id, is_media_id, random_suffix

logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "/uploads/"
UPLOAD_FILENAME_PREFIX = "ta-"
UPLOAD_SUFFIX_LENGTH = 6

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
    ".gif": "image/gif",
}
DEFAULT_MIME_TYPE = "application/octet-stream"


class MediaValidationError(Exception):
    """Raised when a media request is rejected. `code` is the API error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MediaRecord:
    """One document of the media collection."""
    media_id: str
    filename: str
    original_name: str
    file_path: str
    file_size: int
    mime_type: str
    file_type: str = "admin_upload"
    uploaded_by: Optional[str] = None
    associated_record: Optional[str] = None
    is_external: bool = False
    uploaded_at: datetime = field(default_factory=_utc_now)
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    def to_document(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "MediaRecord":
        now = _utc_now()
        return cls(
            media_id=doc.get("media_id") or str(doc.get("_id", "")),
            filename=doc.get("filename") or "",
            original_name=doc.get("original_name") or doc.get("filename") or "",
            file_path=doc.get("file_path") or "",
            file_size=doc.get("file_size") or 0,
            mime_type=doc.get("mime_type") or DEFAULT_MIME_TYPE,
            file_type=doc.get("file_type") or "image",
            uploaded_by=doc.get("uploaded_by"),
            associated_record=doc.get("associated_record"),
            is_external=bool(doc.get("is_external")),
            uploaded_at=doc.get("uploaded_at") or now,
            created_at=doc.get("created_at") or now,
            updated_at=doc.get("updated_at") or now,
        )


@dataclass
class CleanupReport:
    orphaned_found: int = 0
    cleaned_files: list[dict[str, Any]] = field(default_factory=list)

    @property
    def cleaned_up(self) -> int:
        return len(self.cleaned_files)


@dataclass
class SyncReport:
    scanned: int = 0
    synced_paths: list[str] = field(default_factory=list)

    @property
    def synced(self) -> int:
        return len(self.synced_paths)


@dataclass
class MediaAudit:
    valid: list[dict[str, Any]] = field(default_factory=list)
    orphaned: list[dict[str, Any]] = field(default_factory=list)
    untracked_files: list[str] = field(default_factory=list)


class MediaStore(Protocol):
    """Persistence for media records (see MediaRepository)."""

    def create(self, record: MediaRecord) -> str: ...
    def get(self, media_id: str) -> Optional[dict[str, Any]]: ...
    def list_all(self) -> list[dict[str, Any]]: ...
    def delete(self, media_id: str) -> bool: ...
    def delete_record(self, doc: dict[str, Any]) -> bool: ...
    def known_paths(self) -> set[str]: ...
    def known_filenames(self) -> set[str]: ...


class FileStore(Protocol):
    """File storage addressed by public paths such as /uploads/2024/05/a.png."""

    def save(self, relative_path: str, data: bytes, content_type: str) -> str: ...
    def exists(self, relative_path: str) -> bool: ...
    def delete(self, relative_path: str) -> bool: ...
    def list_files(self) -> list[str]: ...
    def size(self, relative_path: str) -> int: ...


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def guess_mime_type(filename: str) -> str:
    ext = posixpath.splitext(filename or "")[1].lower()
    return MIME_TYPES.get(ext, DEFAULT_MIME_TYPE)


def validate_upload(
    filename: Optional[str],
    content_type: Optional[str],
    size: int,
    max_bytes: int,
) -> None:
    """Reject uploads that are missing, not images, or too large."""
    if not filename:
        raise MediaValidationError("NO_FILE", "Please select a file to upload")

    if not (content_type or "").startswith("image/"):
        raise MediaValidationError("INVALID_FILE_TYPE", "Only image files are allowed")

    if size > max_bytes:
        limit_mb = max_bytes // (1024 * 1024)
        raise MediaValidationError(
            "FILE_TOO_LARGE", f"File size should be less than {limit_mb}MB"
        )


def build_upload_path(original_name: str, now: Optional[datetime] = None) -> tuple[str, str]:
    """
    Name a new upload and place it in the year/month tree.

    The random suffix keeps two uploads in the same millisecond apart.
    Returns (filename, public path), e.g.
    ("ta-1717000000000-k3f9q2.png", "/uploads/2024/05/ta-1717000000000-k3f9q2.png").
    """
    now = now or _utc_now()
    ext = posixpath.splitext(original_name or "")[1].lower()
    millis = int(now.timestamp() * 1000)
    filename = f"{UPLOAD_FILENAME_PREFIX}{millis}-{random_suffix(UPLOAD_SUFFIX_LENGTH)}{ext}"
    path = f"{UPLOADS_PREFIX}{now.year:04d}/{now.month:02d}/{filename}"
    return filename, path


def _is_tracked(path: str, known_paths: set[str], known_filenames: set[str]) -> bool:
    """A stored file is tracked when a record matches its path or its filename."""
    return path in known_paths or posixpath.basename(path) in known_filenames


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class MediaService:
    """Media operations over a record store and a file store."""

    def __init__(
        self,
        repository: MediaStore,
        storage: FileStore,
        max_upload_bytes: int = 10 * 1024 * 1024,
    ) -> None:
        self._repository = repository
        self._storage = storage
        self._max_upload_bytes = max_upload_bytes

    def upload(
        self,
        original_name: Optional[str],
        content_type: Optional[str],
        data: bytes,
        uploaded_by: Optional[str] = None,
    ) -> MediaRecord:
        validate_upload(original_name, content_type, len(data), self._max_upload_bytes)

        filename, path = build_upload_path(original_name)
        self._storage.save(path, data, content_type)

        record = MediaRecord(
            media_id=generate_media_id(),
            filename=filename,
            original_name=original_name,
            file_path=path,
            file_size=len(data),
            mime_type=content_type,
            file_type="admin_upload",
            uploaded_by=uploaded_by,
        )
        try:
            self._repository.create(record)
        except Exception:
            # No record points at the file, so it must not stay in storage.
            logger.error("Failed to record upload, removing file", extra={"file_path": path})
            self._storage.delete(path)
            raise

        logger.info(
            "Uploaded media",
            extra={"media_id": record.media_id, "file_path": path, "size_bytes": len(data)}
        )
        return record

    def delete(self, media_id: str) -> Optional[dict[str, Any]]:
        """
        Delete a media record and then its file.

        Returns the deleted document, or None when no record has this id.
        A file that cannot be removed is logged; the record stays deleted.
        """
        if not is_media_id(media_id):
            raise MediaValidationError(
                "INVALID_ID", "Invalid file ID format - must be custom media_id"
            )

        doc = self._repository.get(media_id)
        if doc is None:
            return None

        if not self._repository.delete(media_id):
            raise MediaValidationError(
                "DELETE_FAILED", "File could not be deleted from database"
            )

        file_path = doc.get("file_path")
        if file_path and not doc.get("is_external"):
            try:
                self._storage.delete(file_path)
            except Exception as e:
                logger.error(
                    "Failed to delete media file",
                    extra={"media_id": media_id, "file_path": file_path, "error": str(e)}
                )

        logger.info("Deleted media", extra={"media_id": media_id})
        return doc

    def _file_exists(self, doc: dict[str, Any]) -> bool:
        file_path = doc.get("file_path")
        if not file_path:
            return False
        return self._storage.exists(file_path)

    def cleanup_orphaned(self, dry_run: bool = False) -> CleanupReport:
        """Delete every record whose file is missing from storage."""
        report = CleanupReport()
        orphans = [
            doc for doc in self._repository.list_all()
            if not doc.get("is_external") and not self._file_exists(doc)
        ]
        report.orphaned_found = len(orphans)

        for doc in orphans:
            entry = {
                "media_id": doc.get("media_id") or str(doc.get("_id")),
                "file_name": doc.get("filename") or doc.get("original_name"),
                "file_path": doc.get("file_path"),
            }
            if dry_run:
                report.cleaned_files.append(entry)
                continue

            try:
                if self._repository.delete_record(doc):
                    report.cleaned_files.append(entry)
            except Exception as e:
                logger.error(
                    "Error deleting orphaned media record",
                    extra={"media_id": entry["media_id"], "error": str(e)}
                )

        logger.info(
            "Orphaned media cleanup finished",
            extra={
                "orphaned_found": report.orphaned_found,
                "cleaned_up": report.cleaned_up,
                "dry_run": dry_run,
            }
        )
        return report

    def sync_uploads(self, dry_run: bool = False) -> SyncReport:
        """Create records for stored files that match no record by path or filename."""
        files = self._storage.list_files()
        report = SyncReport(scanned=len(files))

        known_paths = self._repository.known_paths()
        known_filenames = self._repository.known_filenames()

        for path in files:
            if _is_tracked(path, known_paths, known_filenames):
                continue
            filename = posixpath.basename(path)

            if not dry_run:
                record = MediaRecord(
                    media_id=generate_media_id(),
                    filename=filename,
                    original_name=filename,
                    file_path=path,
                    file_size=self._storage.size(path),
                    mime_type=guess_mime_type(filename),
                    file_type="image",
                )
                self._repository.create(record)
            known_paths.add(path)
            known_filenames.add(filename)
            report.synced_paths.append(path)

        if report.synced:
            logger.info("Synced new files to media collection", extra={"synced": report.synced})
        else:
            logger.info("Media collection already in sync", extra={"scanned": report.scanned})

        return report

    def audit(self) -> MediaAudit:
        audit = MediaAudit()
        records = self._repository.list_all()

        for doc in records:
            if doc.get("is_external") or self._file_exists(doc):
                audit.valid.append(doc)
            else:
                audit.orphaned.append(doc)

        known_paths = {doc["file_path"] for doc in records if doc.get("file_path")}
        known_filenames = {doc["filename"] for doc in records if doc.get("filename")}
        audit.untracked_files = [
            path for path in self._storage.list_files()
            if not _is_tracked(path, known_paths, known_filenames)
        ]
        return audit
