"""
User record repairs.

- Gmail ignores dots and +tags in the local part, so a person who signed up
  as a.b@gmail.com and later requested an OTP as ab@gmail.com ends up with
  two user documents. fix_duplicate_emails merges them.
- Older accounts carry a boolean is_verified instead of verification_status.
- seed_test_accounts creates the accounts used for manual app testing.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from ..core.ids import generate_user_id
from ..core.security import hash_password

logger = logging.getLogger(__name__)

GMAIL_DOMAINS = ("gmail.com", "googlemail.com")


def normalize_email(email: str) -> str:
    """
    Canonical form used to detect duplicate accounts.

    Lowercased; for Gmail addresses dots and +tags are dropped from the
    local part and googlemail.com becomes gmail.com.
    """
    address = (email or "").strip().lower()
    if "@" not in address:
        return address

    local, domain = address.rsplit("@", 1)
    if domain in GMAIL_DOMAINS:
        local = local.split("+", 1)[0].replace(".", "")
        domain = "gmail.com"
    return f"{local}@{domain}"


@dataclass
class DuplicateGroup:
    canonical_email: str
    kept_id: Any
    kept_email: str
    removed_emails: list[str] = field(default_factory=list)


@dataclass
class DuplicateEmailReport:
    groups: list[DuplicateGroup] = field(default_factory=list)
    dry_run: bool = False

    @property
    def removed(self) -> int:
        return sum(len(group.removed_emails) for group in self.groups)


def _keep_priority(doc: dict) -> tuple:
    created = doc.get("created_at")
    has_created = isinstance(created, datetime)
    return (
        0 if doc.get("user_type") else 1,
        0 if has_created else 1,
        created.timestamp() if has_created else 0,
    )


def fix_duplicate_emails(db: Any, dry_run: bool = False) -> DuplicateEmailReport:
    """
    Merge user records whose email addresses are the same mailbox.

    Within a group the record with a user_type wins (oldest first); the
    others are deleted and their addresses kept as email_aliases on the
    winner so either spelling still logs in.
    """
    users = db["users"]
    report = DuplicateEmailReport(dry_run=dry_run)

    groups: dict[str, list[dict]] = {}
    for doc in users.find({"email_address": {"$exists": True, "$ne": None}}):
        key = normalize_email(doc["email_address"])
        if key:
            groups.setdefault(key, []).append(doc)

    for canonical, docs in sorted(groups.items()):
        if len(docs) < 2:
            continue

        ordered = sorted(docs, key=_keep_priority)
        kept, duplicates = ordered[0], ordered[1:]
        group = DuplicateGroup(
            canonical_email=canonical,
            kept_id=kept["_id"],
            kept_email=kept["email_address"],
            removed_emails=[d["email_address"].strip().lower() for d in duplicates],
        )
        report.groups.append(group)

        if dry_run:
            continue

        for duplicate in duplicates:
            users.delete_one({"_id": duplicate["_id"]})
        users.update_one(
            {"_id": kept["_id"]},
            {"$addToSet": {"email_aliases": {"$each": group.removed_emails}}},
        )
        logger.info(
            "Merged duplicate user records",
            extra={"kept_email": group.kept_email, "removed": group.removed_emails}
        )

    return report


@dataclass
class VerificationCleanupReport:
    status_added: int = 0
    legacy_removed: int = 0


def cleanup_verification_fields(db: Any, dry_run: bool = False) -> VerificationCleanupReport:
    """Replace the legacy is_verified flag with verification_status."""
    users = db["users"]
    missing_status = {"verification_status": {"$exists": False}}
    legacy_flag = {"is_verified": {"$exists": True}}

    if dry_run:
        return VerificationCleanupReport(
            status_added=users.count_documents(missing_status),
            legacy_removed=users.count_documents(legacy_flag),
        )

    added = users.update_many(missing_status, {"$set": {"verification_status": "verified"}})
    removed = users.update_many(legacy_flag, {"$unset": {"is_verified": ""}})
    return VerificationCleanupReport(
        status_added=added.modified_count,
        legacy_removed=removed.modified_count,
    )


# ---------------------------------------------------------------------------
# Test accounts
# ---------------------------------------------------------------------------

TEST_CUSTOMER_EMAIL = "test.customer@example.com"
TEST_ASTROLOGER_EMAIL = "test.astrologer@example.com"


def _test_account_documents(password_hash: str, now: datetime) -> list[dict]:
    common = {
        "password": password_hash,
        "auth_type": "email",
        "account_status": "active",
        "verification_status": "verified",
        "is_online": False,
        "country": "India",
        "created_at": now,
        "updated_at": now,
    }
    return [
        {
            **common,
            "user_id": generate_user_id(),
            "full_name": "Test Customer",
            "email_address": TEST_CUSTOMER_EMAIL,
            "phone_number": "+919000000001",
            "user_type": "customer",
            "wallet_balance": 500,
        },
        {
            **common,
            "user_id": generate_user_id(),
            "full_name": "Test Astrologer",
            "email_address": TEST_ASTROLOGER_EMAIL,
            "phone_number": "+919000000002",
            "user_type": "astrologer",
            "wallet_balance": 0,
            "languages": ["Hindi", "English"],
            "skills": ["Vedic Astrology"],
            "experience_years": 5,
            "chat_rate": 8,
            "call_rate": 10,
            "video_call_rate": 15,
        },
    ]


@dataclass
class SeedReport:
    created: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def seed_test_accounts(
    db: Any,
    password: str,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> SeedReport:
    """Insert the test customer and astrologer unless their emails already exist."""
    users = db["users"]
    report = SeedReport()
    documents = _test_account_documents(hash_password(password), now or datetime.now(timezone.utc))

    for doc in documents:
        email = doc["email_address"]
        if users.find_one({"email_address": email}) is not None:
            report.skipped.append(email)
            continue

        if not dry_run:
            users.insert_one(doc)
            logger.info("Seeded test account", extra={"email": email, "user_type": doc["user_type"]})
        report.created.append(email)

    return report
