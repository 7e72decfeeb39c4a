"""
Session endpoints for the admin panel and apps.

- GET  /check: who is calling (used by the admin sidebar to pick menus)
- GET  /csrf-token: issue the double-submit CSRF token
- POST /login: password login, sets auth cookies and returns the token pair
- POST /refresh: exchange a refresh token for a new pair
- POST /logout: mark the user offline and clear auth cookies
"""

import logging
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Body, Header, Request, status
from fastapi.responses import JSONResponse

from ...config.settings import Settings
from ...core.models import is_login_locked, public_user
from ...core.security import (
    ACCESS_TOKEN_COOKIE,
    CSRF_COOKIE,
    CSRF_HEADER,
    REFRESH_TOKEN_COOKIE,
    SecurityError,
    TokenConfig,
    TokenPair,
    decode_access_token,
    decode_refresh_token,
    generate_csrf_token,
    issue_token_pair,
    verify_password,
)
from ..dependencies import (
    OptionalClaimsDep,
    OptionalUserRepositoryDep,
    SettingsDep,
    TokenConfigDep,
    UserRepositoryDep,
    request_token,
)
from ..errors import ApiError, forbidden

logger = logging.getLogger(__name__)

router = APIRouter()

SECONDS_PER_DAY = 24 * 60 * 60
INACTIVE_STATUSES = frozenset({"inactive", "suspended"})

LOGOUT_BODY = {"success": True, "message": "Logged out successfully"}


@router.get(
    "/check",
    summary="Check authentication",
    description="Report whether the caller holds a valid access token, and as which user type",
)
async def check_auth(claims: OptionalClaimsDep) -> JSONResponse:
    if claims is None:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"authenticated": False},
        )

    return JSONResponse(content={
        "authenticated": True,
        "userId": claims.user_id,
        "userType": claims.user_type,
        "email": claims.email,
        "fullName": claims.full_name,
    })


@router.get(
    "/csrf-token",
    summary="Issue CSRF token",
    description="Set the csrf-token cookie; admin mutations must echo it in the x-csrf-token header",
)
async def issue_csrf_token(settings: SettingsDep) -> JSONResponse:
    token = generate_csrf_token()

    response = JSONResponse(content={"success": True, "csrfToken": token})
    response.set_cookie(
        CSRF_COOKIE,
        token,
        max_age=settings.csrf_token_max_age_seconds,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="strict",
    )
    response.headers[CSRF_HEADER] = token
    return response


def _set_auth_cookies(
    response: JSONResponse,
    tokens: TokenPair,
    settings: Settings,
    token_config: TokenConfig,
) -> None:
    cookies = (
        (ACCESS_TOKEN_COOKIE, tokens.access_token, token_config.access_expire_days),
        (REFRESH_TOKEN_COOKIE, tokens.refresh_token, token_config.refresh_expire_days),
    )
    for name, value, days in cookies:
        response.set_cookie(
            name,
            value,
            max_age=days * SECONDS_PER_DAY,
            path="/",
            secure=settings.cookie_secure,
            httponly=True,
            samesite="strict",
        )


def _token_response(
    message: str,
    user: dict[str, Any],
    tokens: TokenPair,
    settings: Settings,
    token_config: TokenConfig,
) -> JSONResponse:
    response = JSONResponse(content={
        "success": True,
        "message": message,
        "data": {
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token,
            "expires_in": token_config.access_expire_days * SECONDS_PER_DAY,
            "user": public_user(user),
        },
    })
    _set_auth_cookies(response, tokens, settings, token_config)
    return response


def _require_active(user: dict[str, Any]) -> None:
    if user.get("account_status") in INACTIVE_STATUSES:
        raise forbidden("ACCOUNT_INACTIVE", "Your account is not active. Please contact support.")


@router.post(
    "/login",
    summary="Log in",
    description="Verify email or phone and password, then set auth cookies and return the token pair",
)
async def login(
    body: Annotated[dict[str, Any], Body()],
    settings: SettingsDep,
    token_config: TokenConfigDep,
    users: UserRepositoryDep,
) -> JSONResponse:
    """
    Password login for all user types.

    `identifier` may be an email address or a phone number; `email_address`
    is accepted for older clients. Five failed attempts lock the account
    for thirty minutes, checked before the password.
    """
    identifier = body.get("identifier") or body.get("email_address")
    password = body.get("password")

    if not identifier or not isinstance(identifier, str):
        raise ApiError(
            status.HTTP_400_BAD_REQUEST, "MISSING_IDENTIFIER", "Email or phone number is required"
        )
    if not password or not isinstance(password, str):
        raise ApiError(status.HTTP_400_BAD_REQUEST, "MISSING_PASSWORD", "Password is required")

    user = users.find_for_login(identifier)
    if user is None:
        raise ApiError(
            status.HTTP_401_UNAUTHORIZED, "INVALID_CREDENTIALS", "Invalid email/phone or password"
        )

    _require_active(user)

    if is_login_locked(user):
        raise ApiError(
            status.HTTP_423_LOCKED,
            "ACCOUNT_LOCKED",
            "Too many failed login attempts. Please try again in 30 minutes.",
        )

    if not user.get("password"):
        raise ApiError(
            status.HTTP_401_UNAUTHORIZED,
            "NO_PASSWORD_SET",
            "This account has no password. Please sign in with Google.",
        )

    if not verify_password(password, user["password"]):
        users.record_failed_login(user["_id"])
        logger.info("Failed login", extra={"user_id": user.get("user_id")})
        raise ApiError(
            status.HTTP_401_UNAUTHORIZED, "INVALID_CREDENTIALS", "Invalid email/phone or password"
        )

    if not user.get("user_id"):
        raise ApiError(
            status.HTTP_400_BAD_REQUEST,
            "ACCOUNT_SETUP_REQUIRED",
            "Account setup is incomplete. Please contact support.",
        )

    tokens = issue_token_pair(user, token_config)
    users.record_login(user["_id"])
    logger.info("User logged in", extra={"user_id": user["user_id"], "session_id": tokens.session_id})

    return _token_response("Login successful", user, tokens, settings, token_config)


async def _refresh_token_from_body(request: Request) -> Optional[str]:
    try:
        body = await request.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("refresh_token"), str):
        return body["refresh_token"]
    return None


@router.post(
    "/refresh",
    summary="Refresh tokens",
    description="Exchange a refresh token (cookie or body) for a new access/refresh pair",
)
async def refresh_tokens(
    request: Request,
    settings: SettingsDep,
    token_config: TokenConfigDep,
    users: UserRepositoryDep,
) -> JSONResponse:
    token = request.cookies.get(REFRESH_TOKEN_COOKIE) or await _refresh_token_from_body(request)
    if not token:
        raise ApiError(
            status.HTTP_401_UNAUTHORIZED, "MISSING_REFRESH_TOKEN", "Refresh token is required"
        )

    try:
        payload = decode_refresh_token(token, token_config)
    except SecurityError:
        raise ApiError(
            status.HTTP_401_UNAUTHORIZED, "INVALID_REFRESH_TOKEN", "Invalid or expired refresh token"
        )

    user_id = payload.get("userId") or payload.get("user_id")
    if not user_id:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "INVALID_TOKEN_DATA", "Invalid token data")

    user = users.get_active(str(user_id))
    if user is None:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "USER_NOT_FOUND", "User not found")

    _require_active(user)

    tokens = issue_token_pair(user, token_config)
    users.touch_activity(user["user_id"])

    return _token_response("Tokens refreshed successfully", user, tokens, settings, token_config)


def _clear_auth_cookies(response: JSONResponse, secure: bool) -> None:
    for name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(name, path="/", secure=secure, httponly=True, samesite="strict")


@router.post(
    "/logout",
    summary="Log out",
    description="Always succeeds; clears auth cookies and marks the user offline when the token is valid",
)
async def logout(
    request: Request,
    settings: SettingsDep,
    token_config: TokenConfigDep,
    users: OptionalUserRepositoryDep,
    authorization: Annotated[Optional[str], Header()] = None,
) -> JSONResponse:
    """
    Log the caller out.

    A client must never be left stuck in a logged-in state, so an invalid
    token or a database failure is logged and the response is still a
    success with the cookies cleared.
    """
    client_ip = request.headers.get("x-forwarded-for") or request.headers.get("x-real-ip") or "unknown"
    token = request_token(request, authorization)

    if token:
        try:
            claims = decode_access_token(token, token_config)
            if users is not None:
                users.mark_logged_out(claims.user_id)
            logger.info("User logged out", extra={"user_id": claims.user_id, "ip": client_ip})
        except SecurityError:
            logger.info("Invalid token during logout, proceeding", extra={"ip": client_ip})
        except Exception as e:
            logger.error("Logout failed to update user", extra={"ip": client_ip, "error": str(e)})

    response = JSONResponse(content=LOGOUT_BODY)
    _clear_auth_cookies(response, settings.cookie_secure)
    return response
