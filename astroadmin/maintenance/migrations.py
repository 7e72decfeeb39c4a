"""
Schema migrations and data repairs for consultation records.

Each task is safe to re-run: a second run finds nothing left to change.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

WALLET_TRANSACTIONS = "wallet_transactions"
TRANSACTIONS = "transactions"


@dataclass
class WalletMigrationReport:
    source_exists: bool = False
    source_count: int = 0
    migrated: int = 0
    duplicates: int = 0
    dropped: bool = False
    dry_run: bool = False


def migrate_wallet_transactions(db: Any, dry_run: bool = False) -> WalletMigrationReport:
    """
    Merge wallet_transactions into transactions and drop the old collection.

    Documents whose _id already exists in transactions are skipped.
    """
    report = WalletMigrationReport(dry_run=dry_run)

    if WALLET_TRANSACTIONS not in db.list_collection_names():
        logger.info("wallet_transactions does not exist, nothing to migrate")
        return report

    report.source_exists = True
    source = db[WALLET_TRANSACTIONS]
    target = db[TRANSACTIONS]

    docs = list(source.find({}))
    report.source_count = len(docs)

    new_docs = []
    for doc in docs:
        if target.find_one({"_id": doc["_id"]}) is not None:
            report.duplicates += 1
        else:
            new_docs.append(doc)

    if dry_run:
        report.migrated = len(new_docs)
        return report

    if new_docs:
        result = target.insert_many(new_docs, ordered=False)
        report.migrated = len(result.inserted_ids)

    source.drop()
    report.dropped = True

    logger.info(
        "Migrated wallet transactions",
        extra={"migrated": report.migrated, "duplicates": report.duplicates}
    )
    return report


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

DEFAULT_RATE = 10


def session_rate(session_type: Optional[str], astrologer: Optional[dict]) -> float:
    """Per-minute rate for a session type, from the astrologer's profile."""
    astrologer = astrologer or {}
    if session_type == "video_call":
        return astrologer.get("video_call_rate") or astrologer.get("call_rate") or 15
    if session_type == "voice_call":
        return astrologer.get("call_rate") or 10
    if session_type == "chat":
        return astrologer.get("chat_rate") or 8
    return DEFAULT_RATE


@dataclass
class SessionFixReport:
    found: int = 0
    updated: int = 0
    dry_run: bool = False


def fix_null_sessions(db: Any, dry_run: bool = False) -> SessionFixReport:
    """Fill in missing status and rate_per_minute on consultation sessions."""
    sessions = db["sessions"]
    users = db["users"]
    report = SessionFixReport(dry_run=dry_run)

    broken = list(sessions.find({"$or": [{"status": None}, {"rate_per_minute": None}]}))
    report.found = len(broken)
    if dry_run:
        return report

    astrologers: dict[str, Optional[dict]] = {}
    for session in broken:
        astrologer_id = session.get("astrologer_id")
        if astrologer_id and astrologer_id not in astrologers:
            astrologers[astrologer_id] = users.find_one({"user_id": astrologer_id})

        # Only missing fields are filled; a stored rate of 0 is kept.
        update: dict[str, Any] = {"updated_at": datetime.now(timezone.utc)}
        if session.get("status") is None:
            update["status"] = "completed"
        if session.get("rate_per_minute") is None:
            update["rate_per_minute"] = session_rate(
                session.get("session_type"), astrologers.get(astrologer_id)
            )
        result = sessions.update_one({"_id": session["_id"]}, {"$set": update})
        report.updated += result.modified_count

    logger.info("Fixed sessions with missing fields", extra={"updated": report.updated})
    return report
