"""
Token, cookie and password helpers.

Access and refresh tokens are HS256 JWTs carrying the platform's custom
user_id (not the MongoDB ObjectId) plus the user type used for role checks.
CSRF protection is the double-submit pattern: the same random token is
sent back in a cookie and in the x-csrf-token header.

Nothing here knows about FastAPI or MongoDB.
"""

import secrets
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

import bcrypt
import jwt

ACCESS_TOKEN_COOKIE = "auth-token"
REFRESH_TOKEN_COOKIE = "refresh_token"
CSRF_COOKIE = "csrf-token"
CSRF_HEADER = "x-csrf-token"

CSRF_TOKEN_BYTES = 32
BCRYPT_ROUNDS = 12

ADMIN_USER_TYPES = frozenset({"administrator", "manager"})
WALLET_USER_TYPES = frozenset({"customer", "astrologer"})


class SecurityError(Exception):
    """Raised when a token cannot be issued or verified."""
    pass


@dataclass(frozen=True)
class TokenConfig:
    """Signing parameters for access and refresh tokens."""
    secret: str
    refresh_secret: str
    algorithm: str = "HS256"
    issuer: str = "trueastrotalk-api"
    audience: str = "trueastrotalk-app"
    access_expire_days: int = 90
    refresh_expire_days: int = 180


@dataclass(frozen=True)
class TokenClaims:
    """
    Verified identity carried by an access token.

    Tokens issued by older clients used `user_id` instead of `userId`;
    both are accepted.
    """
    user_id: str
    user_type: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    account_status: Optional[str] = None
    session_id: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "TokenClaims":
        user_id = payload.get("userId") or payload.get("user_id")
        if not user_id:
            raise SecurityError("Token payload has no user id")

        return cls(
            user_id=str(user_id),
            user_type=payload.get("user_type"),
            email=payload.get("email"),
            full_name=payload.get("full_name"),
            account_status=payload.get("account_status"),
            session_id=payload.get("session_id"),
            raw=dict(payload),
        )

    @property
    def is_admin(self) -> bool:
        return self.user_type in ADMIN_USER_TYPES


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def _encode(payload: dict[str, Any], secret: str, expire_days: int, config: TokenConfig) -> str:
    if not secret:
        raise SecurityError("Token secret is not configured")

    issued_at = int(time.time())
    claims = {
        **payload,
        "iss": config.issuer,
        "aud": config.audience,
        "iat": issued_at,
        "exp": issued_at + expire_days * 24 * 60 * 60,
    }
    return jwt.encode(claims, secret, algorithm=config.algorithm)


def _decode(token: str, secret: str, config: TokenConfig) -> dict[str, Any]:
    raw = (token or "").strip()
    if not raw:
        raise SecurityError("Token is empty")

    try:
        payload = jwt.decode(
            raw,
            secret,
            algorithms=[config.algorithm],
            issuer=config.issuer,
            audience=config.audience,
        )
    except jwt.InvalidTokenError as e:
        raise SecurityError(f"Invalid or expired token: {e}") from e

    if not isinstance(payload, dict):
        raise SecurityError("Token payload is not an object")

    return payload


def build_access_token(payload: dict[str, Any], config: TokenConfig) -> str:
    """Sign an access token for the given user payload (userId, user_type, ...)."""
    return _encode(payload, config.secret, config.access_expire_days, config)


def build_refresh_token(payload: dict[str, Any], config: TokenConfig) -> str:
    return _encode(payload, config.refresh_secret, config.refresh_expire_days, config)


def decode_access_token(token: str, config: TokenConfig) -> TokenClaims:
    """
    Verify an access token and return its claims.

    Signature, expiry, issuer and audience are all checked.
    Raises SecurityError on any failure.
    """
    return TokenClaims.from_payload(_decode(token, config.secret, config))


def decode_refresh_token(token: str, config: TokenConfig) -> dict[str, Any]:
    return _decode(token, config.refresh_secret, config)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    session_id: str


def issue_token_pair(user: dict[str, Any], config: TokenConfig) -> TokenPair:
    """
    Sign a fresh access/refresh pair for a user document.

    Each pair gets a new session_id. The refresh token only carries the
    user id and session; everything else is re-read from the user on refresh.
    """
    user_id = user.get("user_id")
    if not user_id:
        raise SecurityError("User has no user_id")

    session_id = str(uuid.uuid4())
    access_token = build_access_token({
        "userId": user_id,
        "email": user.get("email_address"),
        "full_name": user.get("full_name"),
        "user_type": user.get("user_type"),
        "account_status": user.get("account_status"),
        "session_id": session_id,
    }, config)
    refresh_token = build_refresh_token({"userId": user_id, "session_id": session_id}, config)
    return TokenPair(access_token=access_token, refresh_token=refresh_token, session_id=session_id)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an `Authorization: Bearer <token>` header, if any."""
    raw = (authorization or "").strip()
    parts = raw.split(" ", 1)
    if len(parts) != 2:
        return None

    scheme, token = parts[0].strip().lower(), parts[1].strip()
    if scheme != "bearer" or not token:
        return None
    return token


# ---------------------------------------------------------------------------
# CSRF
# ---------------------------------------------------------------------------

def generate_csrf_token() -> str:
    return secrets.token_hex(CSRF_TOKEN_BYTES)


def validate_csrf_token(header_token: Optional[str], cookie_token: Optional[str]) -> bool:
    """Double-submit check: both tokens present and equal (constant time)."""
    if not header_token or not cookie_token:
        return False
    return secrets.compare_digest(header_token.encode("utf-8"), cookie_token.encode("utf-8"))


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------

def hash_password(plain_password: str) -> str:
    password = (plain_password or "").encode("utf-8")
    if not password:
        raise SecurityError("Password is empty")
    return bcrypt.hashpw(password, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    password = (plain_password or "").encode("utf-8")
    hashed = (password_hash or "").encode("utf-8")
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password, hashed)
    except ValueError:
        return False
