"""
File storage for uploaded media.

Supports the local public directory and R2 (Cloudflare) / S3 via the
S3-compatible API.
"""

from .client import (
    LocalStorageClient,
    R2StorageClient,
    StorageClient,
    StorageConfig,
    StorageError,
    create_storage_client,
)

__all__ = [
    "LocalStorageClient",
    "R2StorageClient",
    "StorageClient",
    "StorageConfig",
    "StorageError",
    "create_storage_client",
]
