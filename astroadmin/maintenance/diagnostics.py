"""Read-only database inspection tasks."""

from dataclasses import dataclass, field
from typing import Any

SESSION_COLLECTIONS = ("call_sessions", "chat_sessions")


@dataclass
class CollectionsReport:
    counts: dict[str, int] = field(default_factory=dict)
    session_collections: dict[str, bool] = field(default_factory=dict)


def check_collections(db: Any) -> CollectionsReport:
    """Count documents per collection and note which session collections exist."""
    report = CollectionsReport()

    names = sorted(db.list_collection_names())
    for name in names:
        report.counts[name] = db[name].count_documents({})

    for name in SESSION_COLLECTIONS:
        report.session_collections[name] = name in names

    return report
