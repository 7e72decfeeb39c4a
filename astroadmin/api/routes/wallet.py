"""Customer wallet endpoints."""

import logging

from fastapi import APIRouter, status

from ...core.security import WALLET_USER_TYPES
from ..dependencies import ClaimsDep, UserRepositoryDep
from ..errors import ApiError, forbidden

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/balance",
    status_code=status.HTTP_200_OK,
    summary="Get wallet balance",
    description="Wallet balance of the authenticated customer or astrologer",
)
async def get_wallet_balance(claims: ClaimsDep, users: UserRepositoryDep) -> dict:
    if claims.user_type not in WALLET_USER_TYPES:
        raise forbidden("Forbidden", "Access denied. Customer or astrologer account required.")

    summary = users.get_wallet_summary(claims.user_id)
    if summary is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, "User not found", "User account no longer exists")

    logger.debug("Wallet balance read", extra={"user_id": claims.user_id})

    return {
        "success": True,
        "data": {
            "wallet_balance": summary.wallet_balance,
            "user_name": summary.user_name,
            "user_email": summary.user_email,
        },
    }
