"""
Admin media library endpoints.

All routes require an administrator or manager token and a valid CSRF
token (router-level dependencies).
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import JSONResponse

from ...core.media import MediaValidationError
from ..dependencies import AdminDep, MediaServiceDep, require_admin, require_csrf
from ..errors import ApiError

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin), Depends(require_csrf)])


def _validation_error(e: MediaValidationError) -> ApiError:
    return ApiError(status.HTTP_400_BAD_REQUEST, e.code, e.message)


@router.post(
    "/upload",
    status_code=status.HTTP_201_CREATED,
    summary="Upload image",
    description="Store an image under /uploads/YYYY/MM/ and add it to the media library",
)
async def upload_media(
    claims: AdminDep,
    service: MediaServiceDep,
    file: Annotated[Optional[UploadFile], File()] = None,
) -> JSONResponse:
    if file is None:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "NO_FILE", "Please select a file to upload")

    data = await file.read()
    try:
        record = service.upload(file.filename, file.content_type, data, uploaded_by=claims.user_id)
    except MediaValidationError as e:
        raise _validation_error(e) from e

    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={
            "success": True,
            "message": "File uploaded successfully",
            "media_id": record.media_id,
            "file_path": record.file_path,
            "filename": record.filename,
        },
    )


@router.delete(
    "/{media_id}",
    summary="Delete media",
    description="Remove a media record and its file",
)
async def delete_media(media_id: str, service: MediaServiceDep) -> dict:
    try:
        deleted = service.delete(media_id)
    except MediaValidationError as e:
        raise _validation_error(e) from e

    if deleted is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, "File not found", f"No media with id {media_id}")

    return {"success": True, "message": "File deleted successfully"}


@router.post(
    "/cleanup-orphaned",
    summary="Clean up orphaned records",
    description="Delete media records whose file no longer exists",
)
async def cleanup_orphaned(service: MediaServiceDep) -> dict:
    report = service.cleanup_orphaned()

    return {
        "success": True,
        "message": f"Cleaned up {report.cleaned_up} orphaned record(s)",
        "orphaned_found": report.orphaned_found,
        "cleaned_up": report.cleaned_up,
        "cleaned_files": report.cleaned_files,
    }


@router.post(
    "/sync",
    summary="Sync uploads",
    description="Add media records for files in the uploads tree that have none",
)
async def sync_uploads(service: MediaServiceDep) -> dict:
    report = service.sync_uploads()

    return {"success": True, "scanned": report.scanned, "synced": report.synced}
