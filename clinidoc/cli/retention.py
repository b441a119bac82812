# clinidoc/cli/retention.py
"""
CLI commands for archive and retention management.

Usage:
    python -m clinidoc.cli.retention status
    python -m clinidoc.cli.retention list --status Expired
    python -m clinidoc.cli.retention archive 42 --reason "Superseded" --user admin@clinic
    python -m clinidoc.cli.retention restore 7 --user admin@clinic
    python -m clinidoc.cli.retention delete 7 --user root@clinic --confirm
    python -m clinidoc.cli.retention purge --dry-run
    python -m clinidoc.cli.retention policies
"""

import argparse
import sys
from datetime import date

from dotenv import load_dotenv

load_dotenv()


def get_db_session():
    """Get a database session."""
    from clinidoc.database import SessionLocal

    return SessionLocal()


def positive_int(value: str) -> int:
    """argparse type for sizes and limits."""
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def _today(args) -> date:
    return args.as_of or date.today()


def cmd_status(args):
    """Show archive ledger statistics and pending expiries."""
    from clinidoc.services.retention import get_archive_stats, list_expired_records

    db = get_db_session()
    try:
        today = _today(args)
        stats = get_archive_stats(db, today=today)
        expired = list_expired_records(db, today=today, limit=args.limit)

        print(f"\n=== Archive Status (as of {today.isoformat()}) ===\n")
        print(f"Total archived: {stats['total']}")
        print(f"  Document-level: {stats['document_level']}")
        print(f"  Version-level: {stats['version_level']}")
        print(f"\nActive (restorable): {stats['active']}")
        print(f"Expired (deletable): {stats['expired']}")

        if expired:
            print("\nExpired archives:")
            for record in expired:
                print(
                    f"  #{record.id} {record.document.title} "
                    f"(retention ended {record.retention_until.isoformat()})"
                )
        print()
    finally:
        db.close()


def cmd_list(args):
    """List archive ledger entries."""
    from clinidoc.services.retention import list_archived

    db = get_db_session()
    try:
        today = _today(args)
        page = list_archived(
            db,
            search_term=args.search,
            status_filter=args.status,
            page=args.page,
            page_size=args.page_size,
            today=today,
        )

        print(f"\n=== Archives (page {page.page} of {max(page.total_pages, 1)}, {page.total} total) ===\n")
        for record in page.items:
            scope = record.version.label if record.version else "document"
            print(f"#{record.id} [{record.retention_status(today).value}] {record.document.title} ({scope})")
            print(f"  Archived {record.archive_date.isoformat()} by {record.archived_by}: {record.reason}")
            print(f"  Retained until {record.retention_until.isoformat()}")
        print()
    finally:
        db.close()


def cmd_archive(args):
    """Archive a document, or one of its versions with --version-id."""
    from clinidoc.services.retention import archive_document, archive_version

    db = get_db_session()
    try:
        if args.version_id:
            record = archive_version(
                db, args.document_id, args.version_id, args.reason, args.user, today=args.as_of
            )
            print(f"Archived version {args.version_id} of document {args.document_id} (archive #{record.id})")
        else:
            record = archive_document(db, args.document_id, args.reason, args.user, today=args.as_of)
            print(f"Archived document {args.document_id} (archive #{record.id})")
        print(f"  Retained until: {record.retention_until.isoformat()}")
    finally:
        db.close()


def cmd_restore(args):
    """Restore an archived document or version."""
    from clinidoc.services.retention import restore

    db = get_db_session()
    try:
        result = restore(db, args.archive_id, args.user, today=args.as_of)
        if result.is_version_restore:
            print(f"Restored version {result.version_id} of document {result.document_id}")
        else:
            print(f"Restored document {result.document_id}")
    finally:
        db.close()


def cmd_delete(args):
    """Permanently delete one expired archive."""
    from clinidoc.services.retention import permanent_delete

    if not args.confirm:
        print("Error: Permanent delete requires --confirm")
        sys.exit(1)

    db = get_db_session()
    try:
        result = permanent_delete(db, args.archive_id, args.user, today=args.as_of)

        print(f"Permanently deleted archive #{result.archive_id}")
        print(f"  Archive records: {result.archive_records_deleted}")
        print(f"  Versions: {result.versions_deleted}")
        print(f"  Documents: {result.documents_deleted}")
        print(f"  Files: {result.files_deleted}")

        if result.file_errors:
            print("\nFiles that could not be removed:")
            for error in result.file_errors:
                print(f"  - {error}")
    finally:
        db.close()


def cmd_purge(args):
    """Permanently delete expired archives under AutoDelete policies."""
    from clinidoc.services.retention import purge_expired

    if not args.dry_run and not args.confirm:
        print("Error: Purge requires --confirm flag for non-dry-run operations")
        print("Use --dry-run to preview what would be deleted")
        sys.exit(1)

    db = get_db_session()
    try:
        print(f"\n{'DRY RUN - ' if args.dry_run else ''}Purging expired archives...\n")

        result = purge_expired(
            db,
            acting_user=args.user,
            today=args.as_of,
            batch_size=args.batch_size,
            dry_run=args.dry_run,
        )

        print(f"Expired candidates: {result.candidates}")
        print(f"Purged: {result.purged}")
        print(f"Skipped (not AutoDelete): {result.skipped}")

        if result.errors:
            print("\nErrors:")
            for error in result.errors:
                print(f"  - {error}")

        if not result.success:
            sys.exit(1)
    finally:
        db.close()


def cmd_list_policies(args):
    """List all retention policies."""
    from clinidoc.models import AUTO_ACTION_LABELS, AutoAction
    from clinidoc.services.retention import format_duration, list_policies

    db = get_db_session()
    try:
        result = list_policies(db, page=args.page, page_size=args.page_size)

        print("\n=== Retention Policies ===\n")
        for policy in result.items:
            status = "" if policy.is_enabled else "[DISABLED]"
            print(f"#{policy.id} {policy.module_name} {status}")
            print(f"  Duration: {format_duration(policy.duration_months)}")
            print(f"  Action: {AUTO_ACTION_LABELS[AutoAction(policy.auto_action)]}")
            print()
    finally:
        db.close()


def cmd_create_policy(args):
    """Create a retention policy."""
    from clinidoc.services.retention import create_policy

    db = get_db_session()
    try:
        policy = create_policy(
            db,
            module_name=args.module_name,
            duration_months=args.months,
            auto_action=args.action,
            enabled=not args.disabled,
        )
        print(f"Created retention policy #{policy.id}: {policy.module_name} ({policy.duration_months} months)")
    finally:
        db.close()


def cmd_toggle_policy(args):
    """Enable or disable a retention policy."""
    from clinidoc.services.retention import toggle_enabled

    db = get_db_session()
    try:
        policy = toggle_enabled(db, args.policy_id)
        state = "enabled" if policy.is_enabled else "disabled"
        print(f"Retention policy {policy.module_name} {state}")
    finally:
        db.close()


def cmd_seed_policies(args):
    """Create the standard document-type policies that are missing."""
    from clinidoc.services.retention import ensure_default_policies

    db = get_db_session()
    try:
        created = ensure_default_policies(db)
        if not created:
            print("All default policies already exist")
        for policy in created:
            print(f"Created {policy.module_name} ({policy.duration_months} months)")
    finally:
        db.close()


def main(argv=None):
    from clinidoc.logging_config import configure_logging
    from clinidoc.models import AutoAction, StatusFilter
    from clinidoc.services.retention.errors import LifecycleError

    parser = argparse.ArgumentParser(
        description="Clinical Document Archive & Retention CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check ledger status
  python -m clinidoc.cli.retention status

  # Search expired archives
  python -m clinidoc.cli.retention list --status Expired --search "lab"

  # Archive version 12 of document 42
  python -m clinidoc.cli.retention archive 42 --version-id 12 --reason "Wrong patient" --user admin

  # Preview the AutoDelete purge
  python -m clinidoc.cli.retention purge --dry-run
        """,
    )
    parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="Reference date YYYY-MM-DD for retention checks (default: today)",
    )
    parser.add_argument("--verbose", action="store_true", help="Show service logs")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # status command
    status_parser = subparsers.add_parser("status", help="Show archive statistics")
    status_parser.add_argument("--limit", type=positive_int, default=20, help="Max expired archives to show (default: 20)")
    status_parser.set_defaults(func=cmd_status)

    # list command
    list_parser = subparsers.add_parser("list", help="List archived documents and versions")
    list_parser.add_argument("--search", default=None, help="Match title, reason or archiving user")
    list_parser.add_argument(
        "--status",
        choices=[s.value for s in StatusFilter],
        default=StatusFilter.ALL.value,
        help="Filter by retention status (default: All)",
    )
    list_parser.add_argument("--page", type=int, default=1)
    list_parser.add_argument("--page-size", type=positive_int, default=10)
    list_parser.set_defaults(func=cmd_list)

    # archive command
    archive_parser = subparsers.add_parser("archive", help="Archive a document or version")
    archive_parser.add_argument("document_id", type=int)
    archive_parser.add_argument("--version-id", type=int, default=None, help="Archive only this version")
    archive_parser.add_argument("--reason", required=True, help="Archive reason (max 200 chars)")
    archive_parser.add_argument("--user", required=True, help="Acting user id")
    archive_parser.set_defaults(func=cmd_archive)

    # restore command
    restore_parser = subparsers.add_parser("restore", help="Restore an archive within retention")
    restore_parser.add_argument("archive_id", type=int)
    restore_parser.add_argument("--user", required=True, help="Acting user id")
    restore_parser.set_defaults(func=cmd_restore)

    # delete command
    delete_parser = subparsers.add_parser("delete", help="Permanently delete one expired archive")
    delete_parser.add_argument("archive_id", type=int)
    delete_parser.add_argument("--user", required=True, help="Acting user id")
    delete_parser.add_argument("--confirm", action="store_true", help="Confirm permanent deletion")
    delete_parser.set_defaults(func=cmd_delete)

    # purge command
    purge_parser = subparsers.add_parser("purge", help="Delete expired archives under AutoDelete policies")
    purge_parser.add_argument("--batch-size", type=positive_int, default=100, help="Max archives to examine (default: 100)")
    purge_parser.add_argument("--user", default="retention-scheduler", help="Acting user id")
    purge_parser.add_argument("--dry-run", action="store_true", help="Preview only, don't delete")
    purge_parser.add_argument("--confirm", action="store_true", help="Confirm purge operation")
    purge_parser.set_defaults(func=cmd_purge)

    # policies command
    policies_parser = subparsers.add_parser("policies", help="List retention policies")
    policies_parser.add_argument("--page", type=int, default=1)
    policies_parser.add_argument("--page-size", type=positive_int, default=50)
    policies_parser.set_defaults(func=cmd_list_policies)

    # create-policy command
    create_parser = subparsers.add_parser("create-policy", help="Create a retention policy")
    create_parser.add_argument("module_name", help="Document type, e.g. 'Lab Reports'")
    create_parser.add_argument("months", type=int, help="Retention duration in months (1-1200)")
    create_parser.add_argument(
        "--action",
        choices=[a.value for a in AutoAction],
        default=AutoAction.MANUAL_REVIEW.value,
        help="Action once retention expires (default: ManualReview)",
    )
    create_parser.add_argument("--disabled", action="store_true", help="Create the policy disabled")
    create_parser.set_defaults(func=cmd_create_policy)

    # toggle-policy command
    toggle_parser = subparsers.add_parser("toggle-policy", help="Enable or disable a policy")
    toggle_parser.add_argument("policy_id", type=int)
    toggle_parser.set_defaults(func=cmd_toggle_policy)

    # seed-policies command
    seed_parser = subparsers.add_parser("seed-policies", help="Create missing default policies")
    seed_parser.set_defaults(func=cmd_seed_policies)

    args = parser.parse_args(argv)

    configure_logging(json_format=False, level="INFO" if args.verbose else "WARNING")

    try:
        args.func(args)
    except (LifecycleError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
