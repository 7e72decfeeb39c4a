"""
Public app configuration for signed-in mobile users.

Reads the `general` app_settings document and returns only the fields the
apps need (see core.models.public_app_config).
"""

import logging

from fastapi import APIRouter, status

from ...core.models import public_app_config
from ..dependencies import AppSettingsRepositoryDep, ClaimsDep
from ..errors import ApiError, forbidden

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "",
    summary="Get app configuration",
    description="Payment key id, app version gates and commission rates",
)
async def get_app_config(claims: ClaimsDep, app_settings: AppSettingsRepositoryDep) -> dict:
    if not claims.user_type:
        raise forbidden("Invalid user", "Invalid user session")

    settings_doc = app_settings.get_general()
    if settings_doc is None:
        logger.warning("App configuration requested before it was set up")
        raise ApiError(
            status.HTTP_404_NOT_FOUND,
            "Configuration not found",
            "App configuration has not been set up yet",
        )

    return {"success": True, "config": public_app_config(settings_doc)}
