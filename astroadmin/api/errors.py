"""
API error responses.

Every handled failure is returned as
    {"success": false, "error": <code>, "message": <text>}
so the admin panel and the mobile apps can show `message` directly.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Raised by routes and dependencies to return an error response."""

    def __init__(self, status_code: int, error: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = error
        self.message = message


def error_body(error: str, message: str) -> dict:
    return {"success": False, "error": error, "message": message}


def unauthorized(message: str = "Valid authentication token is required.") -> ApiError:
    return ApiError(status.HTTP_401_UNAUTHORIZED, "AUTHENTICATION_REQUIRED", message)


def forbidden(error: str, message: str) -> ApiError:
    return ApiError(status.HTTP_403_FORBIDDEN, error, message)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "Request failed",
            extra={"path": request.url.path, "error": exc.error, "detail": exc.message}
        )
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.error, exc.message))
