"""
Command line entry point for maintenance tasks.

Usage:
    astroadmin-maintain check-collections
    astroadmin-maintain check-user akash@example.com
    astroadmin-maintain fix-duplicate-emails --dry-run
    astroadmin-maintain migrate-wallet-transactions

Connection settings come from the environment / .env (MONGODB_URL, DB_NAME).
"""

import argparse
import logging
import sys
from typing import Any, Callable, Optional

from dotenv import load_dotenv

from ..config.settings import Settings, get_settings
from ..core.media import MediaService
from ..infrastructure.mongo.client import DatabaseError, MongoConfig, create_mongo_database
from ..infrastructure.mongo.repositories import MediaRepository, UserRepository
from ..infrastructure.storage.client import StorageConfig, StorageError, create_storage_client
from .diagnostics import check_collections
from .migrations import fix_null_sessions, migrate_wallet_transactions
from .users import cleanup_verification_fields, fix_duplicate_emails, seed_test_accounts


def _media_service(db: Any, settings: Settings) -> MediaService:
    if settings.storage_backend == "r2":
        storage = create_storage_client("r2", config=StorageConfig(
            access_key_id=settings.r2_access_key_id,
            secret_access_key=settings.r2_secret_access_key,
            bucket_name=settings.r2_bucket_name,
            endpoint_url=settings.r2_endpoint,
        ))
    else:
        storage = create_storage_client("local", public_dir=settings.public_path)
    return MediaService(MediaRepository(db), storage, max_upload_bytes=settings.max_upload_bytes)


def _prefix(args: argparse.Namespace) -> str:
    return "[DRY RUN] " if getattr(args, "dry_run", False) else ""


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_check_collections(db: Any, settings: Settings, args: argparse.Namespace) -> int:
    report = check_collections(db)
    print(f"Collections in {settings.db_name}:")
    for name, count in report.counts.items():
        print(f"  {name}: {count} documents")
    print("Session collections:")
    for name, exists in report.session_collections.items():
        print(f"  {name} exists: {exists}")
    return 0


def cmd_check_user(db: Any, settings: Settings, args: argparse.Namespace) -> int:
    summary = UserRepository(db).get_summary(args.identifier)
    if summary is None:
        print(f"No user found for {args.identifier}")
        return 1

    for key, value in vars(summary).items():
        print(f"  {key}: {value}")
    return 0


def cmd_check_media(db: Any, settings: Settings, args: argparse.Namespace) -> int:
    audit = _media_service(db, settings).audit()
    print(f"Valid records: {len(audit.valid)}")
    print(f"Orphaned records: {len(audit.orphaned)}")
    for doc in audit.orphaned:
        print(f"  MISSING {doc.get('file_path')} ({doc.get('original_name') or 'unknown'})")
    print(f"Files without a record: {len(audit.untracked_files)}")
    for path in audit.untracked_files:
        print(f"  {path}")
    return 0


def cmd_sync_media(db: Any, settings: Settings, args: argparse.Namespace) -> int:
    report = _media_service(db, settings).sync_uploads(dry_run=args.dry_run)
    print(f"{_prefix(args)}Scanned {report.scanned} files, synced {report.synced}")
    for path in report.synced_paths:
        print(f"  + {path}")
    return 0


def cmd_cleanup_media(db: Any, settings: Settings, args: argparse.Namespace) -> int:
    report = _media_service(db, settings).cleanup_orphaned(dry_run=args.dry_run)
    print(f"{_prefix(args)}Orphaned records: {report.orphaned_found}, removed: {report.cleaned_up}")
    for entry in report.cleaned_files:
        print(f"  - {entry['media_id']} {entry['file_path']}")
    return 0


def cmd_fix_duplicate_emails(db: Any, settings: Settings, args: argparse.Namespace) -> int:
    report = fix_duplicate_emails(db, dry_run=args.dry_run)
    if not report.groups:
        print("No duplicate email records found")
        return 0

    for group in report.groups:
        print(f"{_prefix(args)}{group.canonical_email}: keep {group.kept_email}, "
              f"remove {', '.join(group.removed_emails)}")
    print(f"{_prefix(args)}Removed {report.removed} duplicate record(s)")
    return 0


def cmd_migrate_wallet_transactions(db: Any, settings: Settings, args: argparse.Namespace) -> int:
    report = migrate_wallet_transactions(db, dry_run=args.dry_run)
    if not report.source_exists:
        print("wallet_transactions does not exist - no migration needed")
        return 0

    print(f"{_prefix(args)}Source documents: {report.source_count}")
    print(f"{_prefix(args)}Migrated: {report.migrated}")
    print(f"{_prefix(args)}Duplicates skipped: {report.duplicates}")
    print(f"{_prefix(args)}Source collection dropped: {report.dropped}")
    return 0


def cmd_fix_null_sessions(db: Any, settings: Settings, args: argparse.Namespace) -> int:
    report = fix_null_sessions(db, dry_run=args.dry_run)
    print(f"{_prefix(args)}Sessions with missing fields: {report.found}, updated: {report.updated}")
    return 0


def cmd_cleanup_verification_fields(db: Any, settings: Settings, args: argparse.Namespace) -> int:
    report = cleanup_verification_fields(db, dry_run=args.dry_run)
    print(f"{_prefix(args)}verification_status added: {report.status_added}")
    print(f"{_prefix(args)}is_verified removed: {report.legacy_removed}")
    return 0


def cmd_seed_test_accounts(db: Any, settings: Settings, args: argparse.Namespace) -> int:
    report = seed_test_accounts(db, password=args.password, dry_run=args.dry_run)
    for email in report.created:
        print(f"{_prefix(args)}Created {email}")
    for email in report.skipped:
        print(f"Skipped {email} (already exists)")
    return 0


COMMANDS: dict[str, tuple[Callable[..., int], str, bool]] = {
    "check-collections": (cmd_check_collections, "Count documents in every collection", False),
    "check-user": (cmd_check_user, "Show a user by user_id, email or phone", False),
    "check-media": (cmd_check_media, "Compare media records with stored files", False),
    "sync-media": (cmd_sync_media, "Add media records for untracked upload files", True),
    "cleanup-media": (cmd_cleanup_media, "Delete media records whose file is missing", True),
    "fix-duplicate-emails": (cmd_fix_duplicate_emails, "Merge Gmail dot/plus duplicate users", True),
    "migrate-wallet-transactions": (
        cmd_migrate_wallet_transactions, "Merge wallet_transactions into transactions", True
    ),
    "fix-null-sessions": (cmd_fix_null_sessions, "Fill missing session status and rate", True),
    "cleanup-verification-fields": (
        cmd_cleanup_verification_fields, "Replace is_verified with verification_status", True
    ),
    "seed-test-accounts": (cmd_seed_test_accounts, "Create the test customer and astrologer", True),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="astroadmin-maintain",
        description="Database maintenance tasks",
    )
    parser.add_argument("--mock", action="store_true", help="Run against an empty in-memory database")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, (handler, help_text, mutates) in COMMANDS.items():
        sub = subparsers.add_parser(name, help=help_text)
        sub.set_defaults(handler=handler)
        if mutates:
            sub.add_argument("--dry-run", action="store_true", help="Report changes without writing")

    subparsers.choices["check-user"].add_argument("identifier")
    subparsers.choices["seed-test-accounts"].add_argument(
        "--password", default="Test@12345", help="Password for the seeded accounts"
    )
    return parser


def run(args: argparse.Namespace, settings: Settings) -> int:
    config = MongoConfig(
        url=settings.mongodb_url,
        db_name=settings.db_name,
        server_selection_timeout_ms=settings.mongo_server_selection_timeout_ms,
    )
    mock_mode = args.mock or settings.mongo_mock_mode

    try:
        with create_mongo_database(config, mock_mode=mock_mode) as db:
            return args.handler(db, settings, args)
    except (DatabaseError, StorageError) as e:
        print(f"ERROR: {e}")
        return 1


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.WARNING,
    )

    args = build_parser().parse_args(argv)
    return run(args, get_settings())


if __name__ == "__main__":
    sys.exit(main())
