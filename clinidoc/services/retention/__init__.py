"""
Archive & retention services for clinical documents.

Lifecycle of an archived item:
- Archived: ledger entry exists, restorable while retention_until >= today
- Expired: retention_until < today, restore blocked, permanent delete allowed
- Deleted: rows and stored files removed

Services:
- policy_service: Retention policy CRUD
- archive_service: Archive, restore and ledger listing
- purge_service: Cascade-safe permanent deletion
- dates: Retention date arithmetic
"""

from clinidoc.services.retention.archive_service import (
    ArchivePage,
    RestoreResult,
    archive_document,
    archive_version,
    get_archive,
    get_archive_stats,
    list_archived,
    restore,
)
from clinidoc.services.retention.dates import add_months, compute_retention_until, format_duration
from clinidoc.services.retention.errors import (
    AlreadyArchivedError,
    DuplicateModuleError,
    InconsistentStateError,
    InvalidFileTypeError,
    InvalidPolicyError,
    LastActiveVersionError,
    LifecycleError,
    NotFoundError,
    RetentionExpiredError,
    RetentionNotExpiredError,
)
from clinidoc.services.retention.policy_service import (
    create_policy,
    ensure_default_policies,
    get_policy,
    list_policies,
    resolve_policy,
    toggle_enabled,
    update_policy,
)
from clinidoc.services.retention.purge_service import (
    BatchPurgeResult,
    PurgeResult,
    list_expired_records,
    permanent_delete,
    purge_expired,
)

__all__ = [
    # Policy
    "resolve_policy",
    "get_policy",
    "create_policy",
    "update_policy",
    "toggle_enabled",
    "list_policies",
    "ensure_default_policies",
    # Archive
    "archive_document",
    "archive_version",
    "restore",
    "list_archived",
    "get_archive",
    "get_archive_stats",
    "ArchivePage",
    "RestoreResult",
    # Purge
    "permanent_delete",
    "list_expired_records",
    "purge_expired",
    "PurgeResult",
    "BatchPurgeResult",
    # Dates
    "add_months",
    "compute_retention_until",
    "format_duration",
    # Errors
    "LifecycleError",
    "NotFoundError",
    "AlreadyArchivedError",
    "DuplicateModuleError",
    "RetentionExpiredError",
    "RetentionNotExpiredError",
    "InconsistentStateError",
    "InvalidPolicyError",
    "InvalidFileTypeError",
    "LastActiveVersionError",
]
