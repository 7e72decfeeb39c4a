"""
File storage for uploaded media.

Files are addressed by their public path (/uploads/YYYY/MM/name.ext), the
same string stored in media.file_path. Two backends:
- LocalStorageClient: files under the site's public directory
- R2StorageClient: an S3-compatible bucket (Cloudflare R2), key = path
  without the leading slash
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

UPLOADS_DIR = "uploads"


class StorageError(Exception):
    """Raised when storage operations fail."""
    pass


@dataclass
class StorageConfig:
    """Configuration for R2/S3-compatible storage."""
    access_key_id: str
    secret_access_key: str
    bucket_name: str
    endpoint_url: str
    region: str = "auto"  # R2 uses 'auto' for region


class StorageClient(Protocol):
    """
    Protocol for media file storage.

    Tests can provide their own implementation and the backend can be
    swapped without changing the media service.
    """

    def save(self, relative_path: str, data: bytes, content_type: str) -> str:
        """Store data at the public path and return the path."""
        ...

    def exists(self, relative_path: str) -> bool:
        ...

    def delete(self, relative_path: str) -> bool:
        """Delete the file. Returns False when there was nothing to delete."""
        ...

    def list_files(self) -> list[str]:
        """Public paths of every file under /uploads/, hidden files excluded."""
        ...

    def size(self, relative_path: str) -> int:
        ...


class LocalStorageClient:
    """Stores files under a local public directory."""

    def __init__(self, public_dir: Path) -> None:
        self._root = Path(public_dir).resolve()
        logger.info("Initialized local storage client", extra={"root": str(self._root)})

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, relative_path: str) -> Path:
        full_path = (self._root / relative_path.lstrip("/")).resolve()
        if full_path != self._root and self._root not in full_path.parents:
            raise StorageError(f"Path escapes storage root: {relative_path}")
        return full_path

    def save(self, relative_path: str, data: bytes, content_type: str) -> str:
        full_path = self._resolve(relative_path)
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(data)
        except OSError as e:
            logger.error(
                "Failed to write file",
                extra={"path": relative_path, "error": str(e)}
            )
            raise StorageError(f"Upload failed: {e}") from e

        logger.debug(
            "Stored file",
            extra={"path": relative_path, "size_bytes": len(data), "content_type": content_type}
        )
        return relative_path

    def exists(self, relative_path: str) -> bool:
        try:
            return self._resolve(relative_path).is_file()
        except StorageError:
            return False

    def delete(self, relative_path: str) -> bool:
        full_path = self._resolve(relative_path)
        if not full_path.is_file():
            return False
        try:
            full_path.unlink()
        except OSError as e:
            raise StorageError(f"Delete failed: {e}") from e
        logger.info("Deleted file", extra={"path": relative_path})
        return True

    def list_files(self) -> list[str]:
        uploads = self._root / UPLOADS_DIR
        if not uploads.is_dir():
            logger.info("Uploads directory does not exist", extra={"path": str(uploads)})
            return []

        files = []
        for dirpath, dirnames, filenames in os.walk(uploads):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for filename in sorted(filenames):
                if filename.startswith("."):
                    continue
                relative = Path(dirpath, filename).relative_to(self._root)
                files.append("/" + relative.as_posix())
        return files

    def size(self, relative_path: str) -> int:
        try:
            return self._resolve(relative_path).stat().st_size
        except OSError as e:
            raise StorageError(f"Cannot stat {relative_path}: {e}") from e


class R2StorageClient:
    """
    Cloudflare R2 media storage.

    Uses boto3 because R2 is S3-compatible, so this works against S3 or
    MinIO too.
    """

    def __init__(self, config: StorageConfig) -> None:
        import boto3
        from botocore.config import Config

        self._config = config

        # R2 requires v4 signatures and path-style addressing
        boto_config = Config(
            signature_version='s3v4',
            s3={'addressing_style': 'path'},
        )

        self._s3_client = boto3.client(
            's3',
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
            config=boto_config,
        )

        logger.info(
            "Initialized R2 storage client",
            extra={
                "bucket": config.bucket_name,
                "endpoint": config.endpoint_url,
            }
        )

    @staticmethod
    def _key(relative_path: str) -> str:
        return relative_path.lstrip("/")

    def save(self, relative_path: str, data: bytes, content_type: str) -> str:
        try:
            self._s3_client.put_object(
                Bucket=self._config.bucket_name,
                Key=self._key(relative_path),
                Body=data,
                ContentType=content_type,
            )
        except Exception as e:
            logger.error(
                "Failed to upload file",
                extra={"path": relative_path, "error": str(e)}
            )
            raise StorageError(f"Upload failed: {e}") from e

        return relative_path

    def _head(self, relative_path: str) -> Optional[dict]:
        from botocore.exceptions import ClientError

        try:
            return self._s3_client.head_object(
                Bucket=self._config.bucket_name,
                Key=self._key(relative_path),
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return None
            raise StorageError(f"Head failed: {e}") from e

    def exists(self, relative_path: str) -> bool:
        return self._head(relative_path) is not None

    def delete(self, relative_path: str) -> bool:
        if not self.exists(relative_path):
            return False
        try:
            self._s3_client.delete_object(
                Bucket=self._config.bucket_name,
                Key=self._key(relative_path),
            )
        except Exception as e:
            raise StorageError(f"Delete failed: {e}") from e
        return True

    def list_files(self) -> list[str]:
        paginator = self._s3_client.get_paginator('list_objects_v2')
        files = []
        try:
            for page in paginator.paginate(Bucket=self._config.bucket_name, Prefix=f"{UPLOADS_DIR}/"):
                for obj in page.get('Contents', []):
                    name = obj['Key'].rsplit('/', 1)[-1]
                    if name and not name.startswith('.'):
                        files.append("/" + obj['Key'])
        except Exception as e:
            logger.error("Failed to list files", extra={"error": str(e)})
            raise StorageError(f"List failed: {e}") from e
        return files

    def size(self, relative_path: str) -> int:
        head = self._head(relative_path)
        if head is None:
            raise StorageError(f"File not found: {relative_path}")
        return int(head.get('ContentLength', 0))


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_client(
    backend: str = "local",
    public_dir: Optional[Path] = None,
    config: Optional[StorageConfig] = None,
) -> StorageClient:
    """
    Create the storage client for the configured backend.

    Args:
        backend: "local" or "r2"
        public_dir: site public directory (required for "local")
        config: bucket configuration (required for "r2")
    """
    if backend == "r2":
        if config is None:
            raise ValueError("config is required for the r2 backend")
        return R2StorageClient(config)

    if backend == "local":
        if public_dir is None:
            raise ValueError("public_dir is required for the local backend")
        return LocalStorageClient(public_dir)

    raise ValueError(f"Unknown storage backend: {backend}")
