"""
Domain models for the admin backend.

These are plain dataclasses built from MongoDB documents. Documents use the
platform's field names (user_id, email_address, wallet_balance, ...), so the
from_document constructors are the single place those names are read.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

MAX_FAILED_LOGINS = 5
LOGIN_LOCKOUT = timedelta(minutes=30)


@dataclass(frozen=True)
class WalletSummary:
    """Wallet balance as shown to the account owner."""
    wallet_balance: float
    user_name: Optional[str]
    user_email: Optional[str]

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "WalletSummary":
        return cls(
            wallet_balance=doc.get("wallet_balance") or 0,
            user_name=doc.get("full_name"),
            user_email=doc.get("email_address"),
        )


@dataclass(frozen=True)
class UserSummary:
    """Safe subset of a user document for diagnostics (no secrets)."""
    user_id: Optional[str]
    full_name: Optional[str]
    email_address: Optional[str]
    phone_number: Optional[str]
    user_type: Optional[str]
    account_status: Optional[str]
    wallet_balance: float = 0
    is_online: bool = False
    email_aliases: list[str] = field(default_factory=list)

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "UserSummary":
        return cls(
            user_id=doc.get("user_id"),
            full_name=doc.get("full_name"),
            email_address=doc.get("email_address"),
            phone_number=doc.get("phone_number"),
            user_type=doc.get("user_type"),
            account_status=doc.get("account_status"),
            wallet_balance=doc.get("wallet_balance") or 0,
            is_online=bool(doc.get("is_online")),
            email_aliases=list(doc.get("email_aliases") or []),
        )


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

def public_user(doc: dict[str, Any]) -> dict[str, Any]:
    """User fields returned by login and token refresh."""
    return {
        "id": doc.get("user_id"),
        "full_name": doc.get("full_name"),
        "email_address": doc.get("email_address"),
        "phone_number": doc.get("phone_number") or "",
        "user_type": doc.get("user_type"),
        "account_status": doc.get("account_status"),
        "verification_status": doc.get("verification_status") or "unverified",
        "wallet_balance": doc.get("wallet_balance") or 0,
    }


def is_login_locked(doc: dict[str, Any], now: Optional[datetime] = None) -> bool:
    """
    True while an account with too many failed logins is locked out.

    The lock lasts LOGIN_LOCKOUT from the last failed attempt. pymongo
    returns naive datetimes, which are UTC.
    """
    if int(doc.get("failed_login_attempts") or 0) < MAX_FAILED_LOGINS:
        return False

    last_failed = doc.get("last_failed_login")
    if not isinstance(last_failed, datetime):
        return False
    if last_failed.tzinfo is None:
        last_failed = last_failed.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    return now - last_failed < LOGIN_LOCKOUT


# ---------------------------------------------------------------------------
# App configuration
# ---------------------------------------------------------------------------

DEFAULT_APP_NAME = "True Astrotalk"
DEFAULT_APP_VERSION = "1.0.0"
DEFAULT_COMMISSION_RATE = 25
DEFAULT_GST_RATE = 18


def public_app_config(settings_doc: dict[str, Any]) -> dict[str, Any]:
    """
    Reduce the `general` app_settings document to what mobile apps may see.

    The Razorpay key secret and payout thresholds are never included.
    Empty or zero values fall back to defaults.
    """
    razorpay = settings_doc.get("razorpay") or {}
    app = settings_doc.get("app") or {}
    commission = settings_doc.get("commission") or {}

    return {
        "razorpay": {
            "keyId": razorpay.get("keyId") or "",
            "environment": razorpay.get("environment") or "test",
        },
        "app": {
            "name": app.get("name") or DEFAULT_APP_NAME,
            "version": app.get("version") or DEFAULT_APP_VERSION,
            "minSupportedVersion": app.get("minSupportedVersion") or DEFAULT_APP_VERSION,
        },
        "commission": {
            "defaultRate": commission.get("defaultRate") or DEFAULT_COMMISSION_RATE,
            "gstRate": commission.get("gstRate") or DEFAULT_GST_RATE,
        },
    }
