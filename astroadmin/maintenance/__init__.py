"""
One-off database maintenance tasks.

Each task is a function over a database handle that returns a report, so
it can be run from the CLI (astroadmin.maintenance.cli) or exercised in
tests against the in-memory database.
"""

from .diagnostics import check_collections
from .migrations import fix_null_sessions, migrate_wallet_transactions
from .users import cleanup_verification_fields, fix_duplicate_emails, seed_test_accounts

__all__ = [
    "check_collections",
    "cleanup_verification_fields",
    "fix_duplicate_emails",
    "fix_null_sessions",
    "migrate_wallet_transactions",
    "seed_test_accounts",
]
