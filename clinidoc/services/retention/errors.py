"""
Errors raised by the archive & retention services.

Every error carries a stable `code` so routers and the CLI can report it
without string matching. None of these are transient; callers must not retry.
"""


class LifecycleError(Exception):
    """Base class for archive/retention business-rule violations."""

    code = "lifecycle_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LifecycleError):
    """Referenced document, version, policy or archive record is absent."""

    code = "not_found"

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class AlreadyArchivedError(LifecycleError):
    code = "already_archived"


class DuplicateModuleError(LifecycleError):
    code = "duplicate_module"

    def __init__(self, module_name: str):
        super().__init__(f"A retention policy for '{module_name}' already exists")
        self.module_name = module_name


class RetentionExpiredError(LifecycleError):
    """Restore attempted after the retention period ended."""

    code = "retention_expired"


class RetentionNotExpiredError(LifecycleError):
    """Permanent delete attempted while still inside the retention period."""

    code = "retention_not_expired"


class InconsistentStateError(LifecycleError):
    """Archived flag and ledger disagree."""

    code = "inconsistent_state"


class InvalidPolicyError(LifecycleError, ValueError):
    code = "invalid_policy"


class InvalidFileTypeError(LifecycleError, ValueError):
    code = "invalid_file_type"


class LastActiveVersionError(LifecycleError):
    """Version archive would leave the document with no active version."""

    code = "last_active_version"
