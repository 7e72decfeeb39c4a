"""
Push notification registration.

Mobile apps report their Firebase Cloud Messaging token after login and
whenever Firebase rotates it.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body, status

from ..dependencies import OptionalClaimsDep, UserRepositoryDep
from ..errors import ApiError, unauthorized

logger = logging.getLogger(__name__)

router = APIRouter()

FCM_TOKEN_MIN_LENGTH = 100
FCM_TOKEN_MAX_LENGTH = 500


@router.patch(
    "/fcm-token",
    summary="Update FCM token",
    description="Store the caller's device push token",
)
async def update_fcm_token(
    body: Annotated[dict[str, Any], Body()],
    claims: OptionalClaimsDep,
    users: UserRepositoryDep,
) -> dict:
    fcm_token = body.get("fcmToken")

    if not fcm_token or not isinstance(fcm_token, str):
        raise ApiError(
            status.HTTP_400_BAD_REQUEST, "INVALID_INPUT", "Missing required field: fcmToken"
        )

    if not FCM_TOKEN_MIN_LENGTH <= len(fcm_token) <= FCM_TOKEN_MAX_LENGTH:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "INVALID_INPUT", "Invalid FCM token format")

    if claims is None:
        raise unauthorized()

    if not users.update_fcm_token(claims.user_id, fcm_token):
        raise ApiError(status.HTTP_404_NOT_FOUND, "User not found", "User not found")

    logger.info("FCM token updated", extra={"user_id": claims.user_id})

    return {"success": True, "message": "FCM token updated successfully"}
