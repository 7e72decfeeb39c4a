"""
User repository.

Users are looked up by the custom `user_id` carried in JWTs, never by the
MongoDB `_id`.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from ....core.models import UserSummary, WalletSummary

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"

WALLET_PROJECTION = {"wallet_balance": 1, "full_name": 1, "email_address": 1}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UserRepository:
    """Reads and targeted updates on the users collection."""

    def __init__(self, db: Any) -> None:
        """
        Args:
            db: pymongo Database (or MockMongoDatabase for testing)
        """
        self._collection = db[USERS_COLLECTION]

    def get_by_user_id(
        self,
        user_id: str,
        projection: Optional[dict] = None,
    ) -> Optional[dict[str, Any]]:
        return self._collection.find_one({"user_id": user_id}, projection)

    def find_by_identifier(self, identifier: str) -> Optional[dict[str, Any]]:
        """Match a user_id, email address (case-insensitive) or phone number."""
        email_pattern = f"^{re.escape(identifier.strip())}$"
        return self._collection.find_one({
            "$or": [
                {"user_id": identifier},
                {"email_address": {"$regex": email_pattern, "$options": "i"}},
                {"email_aliases": identifier.strip().lower()},
                {"phone_number": identifier},
            ]
        })

    def get_summary(self, identifier: str) -> Optional[UserSummary]:
        doc = self.find_by_identifier(identifier)
        return UserSummary.from_document(doc) if doc else None

    def get_wallet_summary(self, user_id: str) -> Optional[WalletSummary]:
        doc = self.get_by_user_id(user_id, WALLET_PROJECTION)
        if doc is None:
            return None
        return WalletSummary.from_document(doc)

    def find_for_login(self, identifier: str) -> Optional[dict[str, Any]]:
        """
        Look up a login by email (contains '@') or phone number.

        Banned accounts are never returned.
        """
        value = identifier.strip()
        if "@" in value:
            query = {"email_address": value.lower()}
        else:
            query = {"phone_number": value}
        return self._collection.find_one({**query, "account_status": {"$ne": "banned"}})

    def get_active(self, user_id: str) -> Optional[dict[str, Any]]:
        return self._collection.find_one({"user_id": user_id, "account_status": {"$ne": "banned"}})

    def record_failed_login(self, doc_id: Any) -> None:
        self._collection.update_one(
            {"_id": doc_id},
            {"$inc": {"failed_login_attempts": 1}, "$set": {"last_failed_login": _utc_now()}},
        )

    def record_login(self, doc_id: Any) -> None:
        """Mark the user online and reset the failed-login counter."""
        now = _utc_now()
        self._collection.update_one(
            {"_id": doc_id},
            {
                "$set": {
                    "is_online": True,
                    "last_login": now,
                    "updated_at": now,
                    "failed_login_attempts": 0,
                    "last_failed_login": None,
                },
                "$inc": {"login_count": 1},
            },
        )

    def touch_activity(self, user_id: str) -> None:
        now = _utc_now()
        self._collection.update_one(
            {"user_id": user_id},
            {"$set": {"last_activity": now, "updated_at": now}},
        )

    def mark_logged_out(self, user_id: str) -> bool:
        """Flag the user offline. Returns False when no user matched."""
        now = _utc_now()
        result = self._collection.update_one(
            {"user_id": user_id},
            {"$set": {"is_online": False, "last_logout": now, "updated_at": now}},
        )

        logger.info(
            "Marked user logged out",
            extra={"user_id": user_id, "matched": result.matched_count}
        )
        return result.matched_count > 0

    def update_fcm_token(self, user_id: str, fcm_token: str) -> bool:
        """Store the device push token. Returns False when no user matched."""
        result = self._collection.update_one(
            {"user_id": user_id},
            {"$set": {"fcm_token": fcm_token, "fcm_token_updated_at": _utc_now()}},
        )
        return result.matched_count > 0
