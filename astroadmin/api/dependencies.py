"""
FastAPI dependency injection.

Dependencies provide the database, repositories, storage and the caller's
identity to route handlers. Routes never build their own clients, so tests
can run the whole app against the in-memory database.
"""

import logging
import threading
from typing import Annotated, Any, Optional

from fastapi import Depends, Header, Request

from ..config.settings import Settings, get_settings
from ..core.media import MediaService
from ..core.security import (
    ACCESS_TOKEN_COOKIE,
    CSRF_COOKIE,
    CSRF_HEADER,
    SecurityError,
    TokenClaims,
    TokenConfig,
    decode_access_token,
    extract_bearer_token,
    validate_csrf_token,
)
from ..infrastructure.mongo.client import (
    DatabaseError,
    MockMongoDatabase,
    MongoConfig,
    create_mongo_client,
)
from ..infrastructure.mongo.repositories import (
    AppSettingsRepository,
    MediaRepository,
    UserRepository,
)
from ..infrastructure.storage.client import StorageClient, StorageConfig, create_storage_client
from .errors import forbidden, unauthorized

logger = logging.getLogger(__name__)

# Process-wide database handles
_mongo_client = None
_mock_database: Optional[MockMongoDatabase] = None
_database_lock = threading.Lock()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

def get_database(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Any:
    """
    Provide the database handle.

    pymongo pools connections inside one client, so a single client is
    created lazily and shared by all requests. In mock mode, one in-memory
    database is shared so data persists for the life of the process.
    Sync dependencies run in a threadpool, so creation happens under a lock.
    """
    global _mongo_client, _mock_database

    if settings.mongo_mock_mode:
        if _mock_database is None:
            with _database_lock:
                if _mock_database is None:
                    _mock_database = MockMongoDatabase(settings.db_name)
                    logger.info("Created shared mock database")
        return _mock_database

    if _mongo_client is None:
        with _database_lock:
            if _mongo_client is None:
                _mongo_client = create_mongo_client(MongoConfig(
                    url=settings.mongodb_url,
                    db_name=settings.db_name,
                    server_selection_timeout_ms=settings.mongo_server_selection_timeout_ms,
                    max_pool_size=settings.mongo_max_pool_size,
                ))
    return _mongo_client[settings.db_name]


def close_database() -> None:
    """Close the shared client (application shutdown)."""
    global _mongo_client
    with _database_lock:
        if _mongo_client is not None:
            _mongo_client.close()
            _mongo_client = None
            logger.info("Closed MongoDB client")


def reset_mock_database() -> None:
    """Forget the shared in-memory database (test isolation)."""
    global _mock_database
    with _database_lock:
        _mock_database = None


DatabaseDep = Annotated[Any, Depends(get_database)]


def get_user_repository(db: DatabaseDep) -> UserRepository:
    return UserRepository(db)


def get_optional_user_repository(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Optional[UserRepository]:
    """User repository, or None when the database is unreachable."""
    try:
        return UserRepository(get_database(settings))
    except DatabaseError as e:
        logger.error("Database unavailable", extra={"error": str(e)})
        return None


def get_media_repository(db: DatabaseDep) -> MediaRepository:
    return MediaRepository(db)


def get_app_settings_repository(db: DatabaseDep) -> AppSettingsRepository:
    return AppSettingsRepository(db)


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

def get_storage_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> StorageClient:
    if settings.storage_backend == "r2":
        config = StorageConfig(
            access_key_id=settings.r2_access_key_id,
            secret_access_key=settings.r2_secret_access_key,
            bucket_name=settings.r2_bucket_name,
            endpoint_url=settings.r2_endpoint,
        )
        return create_storage_client("r2", config=config)

    return create_storage_client("local", public_dir=settings.public_path)


def get_media_service(
    settings: Annotated[Settings, Depends(get_settings)],
    repository: Annotated[MediaRepository, Depends(get_media_repository)],
    storage: Annotated[StorageClient, Depends(get_storage_client)],
) -> MediaService:
    return MediaService(repository, storage, max_upload_bytes=settings.max_upload_bytes)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

def get_token_config(
    settings: Annotated[Settings, Depends(get_settings)],
) -> TokenConfig:
    return TokenConfig(
        secret=settings.jwt_secret,
        refresh_secret=settings.jwt_refresh_secret,
        algorithm=settings.jwt_algorithm,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
        access_expire_days=settings.access_token_expire_days,
        refresh_expire_days=settings.refresh_token_expire_days,
    )


TokenConfigDep = Annotated[TokenConfig, Depends(get_token_config)]


def request_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    """Access token from the Authorization header, else the auth cookie."""
    return extract_bearer_token(authorization) or request.cookies.get(ACCESS_TOKEN_COOKIE)


async def get_optional_claims(
    request: Request,
    token_config: TokenConfigDep,
    authorization: Annotated[Optional[str], Header()] = None,
) -> Optional[TokenClaims]:
    """Caller's claims, or None when no valid token was sent."""
    token = request_token(request, authorization)
    if not token:
        return None

    try:
        return decode_access_token(token, token_config)
    except SecurityError as e:
        logger.warning(
            "Rejected access token",
            extra={"path": request.url.path, "error": str(e)}
        )
        return None


async def require_claims(
    claims: Annotated[Optional[TokenClaims], Depends(get_optional_claims)],
) -> TokenClaims:
    if claims is None:
        raise unauthorized("Authentication token is missing, invalid or expired")
    return claims


async def require_admin(
    claims: Annotated[TokenClaims, Depends(require_claims)],
) -> TokenClaims:
    if not claims.is_admin:
        logger.warning(
            "Access denied",
            extra={"user_id": claims.user_id, "user_type": claims.user_type}
        )
        raise forbidden("ACCESS_DENIED", "You do not have permission to access this resource.")
    return claims


async def require_csrf(request: Request) -> None:
    """Double-submit CSRF check for state-changing admin requests."""
    header_token = request.headers.get(CSRF_HEADER)
    cookie_token = request.cookies.get(CSRF_COOKIE)

    if not validate_csrf_token(header_token, cookie_token):
        logger.warning(
            "CSRF validation failed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "has_header": bool(header_token),
                "has_cookie": bool(cookie_token),
            }
        )
        raise forbidden("CSRF_VALIDATION_FAILED", "Invalid or missing CSRF token.")


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

SettingsDep = Annotated[Settings, Depends(get_settings)]
OptionalClaimsDep = Annotated[Optional[TokenClaims], Depends(get_optional_claims)]
ClaimsDep = Annotated[TokenClaims, Depends(require_claims)]
AdminDep = Annotated[TokenClaims, Depends(require_admin)]
UserRepositoryDep = Annotated[UserRepository, Depends(get_user_repository)]
OptionalUserRepositoryDep = Annotated[Optional[UserRepository], Depends(get_optional_user_repository)]
AppSettingsRepositoryDep = Annotated[AppSettingsRepository, Depends(get_app_settings_repository)]
MediaServiceDep = Annotated[MediaService, Depends(get_media_service)]
