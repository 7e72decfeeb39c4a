"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables (and a local .env file)
with sensible defaults. Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

Mock mode for MongoDB enables local development without a running database.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_JWT_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like cors_origins), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "AstroAdmin API"
    api_version: str = "v1"

    # MongoDB Configuration
    mongodb_url: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection string"
    )
    db_name: str = Field(
        default="trueastrotalkDB",
        description="Database holding users, media, settings and sessions"
    )
    mongo_mock_mode: bool = Field(
        default=False,
        description="Use an in-memory document store instead of MongoDB. Enables local dev without a DB."
    )
    mongo_server_selection_timeout_ms: int = Field(default=10000)
    mongo_max_pool_size: int = Field(default=50)

    # JWT Configuration
    jwt_secret: str = Field(
        default="",
        description="Secret for access tokens. Must be at least 32 characters."
    )
    jwt_refresh_secret: str = Field(
        default="",
        description="Secret for refresh tokens. Must be at least 32 characters."
    )
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "trueastrotalk-api"
    jwt_audience: str = "trueastrotalk-app"
    access_token_expire_days: int = 90
    refresh_token_expire_days: int = 180

    # Cookies
    cookie_secure: bool = Field(
        default=False,
        description="Mark auth cookies Secure. Enable in production behind HTTPS."
    )
    csrf_token_max_age_seconds: int = 60 * 60 * 24

    # Media Storage Configuration
    storage_backend: Literal["local", "r2"] = Field(
        default="local",
        description="Where uploaded media lives: the local public dir or an R2/S3 bucket"
    )
    public_dir: str = Field(
        default="public",
        description="Directory served as the site root. Uploads go under <public_dir>/uploads."
    )
    max_upload_size_mb: int = Field(
        default=10,
        description="Maximum size of a single media upload in MB"
    )

    # R2/S3 Storage Configuration
    r2_account_id: str = ""
    r2_access_key_id: str = ""
    r2_secret_access_key: str = ""
    r2_bucket_name: str = "astroadmin-media"
    r2_endpoint_url: Optional[str] = None

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def public_path(self) -> Path:
        return Path(self.public_dir).resolve()

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def r2_endpoint(self) -> str:
        """
        Construct R2 endpoint URL from account ID.

        R2 endpoints follow the pattern: https://{account_id}.r2.cloudflarestorage.com
        """
        if self.r2_endpoint_url:
            return self.r2_endpoint_url
        return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set for the configured backends.

        Returns list of missing (or unusable) settings.
        """
        missing = []

        if len(self.jwt_secret) < MIN_JWT_SECRET_LENGTH:
            missing.append("JWT_SECRET")
        if len(self.jwt_refresh_secret) < MIN_JWT_SECRET_LENGTH:
            missing.append("JWT_REFRESH_SECRET")

        if not self.mongo_mock_mode and not self.mongodb_url:
            missing.append("MONGODB_URL")

        if self.storage_backend == "r2":
            if not self.r2_account_id and not self.r2_endpoint_url:
                missing.append("R2_ACCOUNT_ID")
            if not self.r2_access_key_id:
                missing.append("R2_ACCESS_KEY_ID")
            if not self.r2_secret_access_key:
                missing.append("R2_SECRET_ACCESS_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once per process. For tests, call
    get_settings.cache_clear() or override the dependency.
    """
    return Settings()
