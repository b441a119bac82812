"""
Retention policy management service.

Handles CRUD operations for per-document-type retention policies and
ensures at most one policy exists per module name.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from clinidoc.models import AutoAction, RetentionPolicy
from clinidoc.services.retention.errors import (
    DuplicateModuleError,
    InvalidPolicyError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

MIN_DURATION_MONTHS = 1
MAX_DURATION_MONTHS = 1200

# Standard document types offered by the upload and policy forms
DOCUMENT_TYPES = [
    "Medical History",
    "Examination Reports",
    "Lab Reports",
    "Imaging Reports",
    "Prescription Records",
    "Others",
]

# Seeded on first run; administrators tune them afterwards
DEFAULT_POLICIES = {
    "Medical History": {"duration_months": 120, "auto_action": AutoAction.MANUAL_REVIEW},
    "Examination Reports": {"duration_months": 60, "auto_action": AutoAction.MANUAL_REVIEW},
    "Lab Reports": {"duration_months": 12, "auto_action": AutoAction.NOTIFY_ADMIN},
    "Prescription Records": {"duration_months": 24, "auto_action": AutoAction.AUTO_DELETE},
}


@dataclass
class PolicyPage:
    """One page of retention policies."""
    items: list[RetentionPolicy] = field(default_factory=list)
    total: int = 0
    page: int = 1
    total_pages: int = 0


def _validate(module_name: str, duration_months: int, auto_action: str) -> str:
    if not module_name or not module_name.strip():
        raise InvalidPolicyError("Module name is required")
    if len(module_name) > 100:
        raise InvalidPolicyError("Module name cannot exceed 100 characters")
    if not MIN_DURATION_MONTHS <= duration_months <= MAX_DURATION_MONTHS:
        raise InvalidPolicyError(
            f"Duration must be between {MIN_DURATION_MONTHS} and {MAX_DURATION_MONTHS} months"
        )
    try:
        return AutoAction(auto_action).value
    except ValueError:
        allowed = ", ".join(a.value for a in AutoAction)
        raise InvalidPolicyError(f"Unknown auto action '{auto_action}'. Allowed: {allowed}") from None


def resolve_policy(db: Session, document_type: str) -> Optional[RetentionPolicy]:
    """
    Get the enabled policy whose module name exactly matches document_type.

    Matching is case-sensitive; "lab reports" does not match "Lab Reports".
    """
    return (
        db.query(RetentionPolicy)
        .filter(
            RetentionPolicy.module_name == document_type,
            RetentionPolicy.is_enabled == True,
        )
        .first()
    )


def get_policy(db: Session, policy_id: int) -> RetentionPolicy:
    """Get a retention policy by id. Raises NotFoundError if absent."""
    policy = db.query(RetentionPolicy).filter(RetentionPolicy.id == policy_id).first()
    if not policy:
        raise NotFoundError("Retention policy", policy_id)
    return policy


def get_policy_by_module(db: Session, module_name: str) -> Optional[RetentionPolicy]:
    """Get a retention policy by module name, enabled or not."""
    return (
        db.query(RetentionPolicy)
        .filter(RetentionPolicy.module_name == module_name)
        .first()
    )


def create_policy(
    db: Session,
    module_name: str,
    duration_months: int,
    auto_action: str = AutoAction.MANUAL_REVIEW.value,
    enabled: bool = True,
) -> RetentionPolicy:
    """
    Create a new retention policy.

    Args:
        db: Database session
        module_name: Document type the policy applies to (unique)
        duration_months: Months an archived item is kept before deletion is allowed
        auto_action: NotifyAdmin, AutoDelete or ManualReview
        enabled: Whether archive operations should use this policy

    Returns:
        The created RetentionPolicy
    """
    action = _validate(module_name, duration_months, auto_action)

    if get_policy_by_module(db, module_name):
        raise DuplicateModuleError(module_name)

    policy = RetentionPolicy(
        module_name=module_name,
        duration_months=duration_months,
        auto_action=action,
        is_enabled=enabled,
    )

    db.add(policy)
    db.commit()
    db.refresh(policy)

    logger.info(
        f"Created retention policy: {module_name} ({duration_months} months, enabled={enabled})",
        extra={"event": "policy_created", "policy_id": policy.id},
    )
    return policy


def update_policy(
    db: Session,
    policy_id: int,
    module_name: str,
    duration_months: int,
    auto_action: str,
    enabled: bool,
) -> RetentionPolicy:
    """
    Replace every field of an existing retention policy.

    Raises NotFoundError if the id is unknown and DuplicateModuleError if a
    different policy already uses module_name.
    """
    policy = get_policy(db, policy_id)
    action = _validate(module_name, duration_months, auto_action)

    duplicate = (
        db.query(RetentionPolicy)
        .filter(
            RetentionPolicy.module_name == module_name,
            RetentionPolicy.id != policy_id,
        )
        .first()
    )
    if duplicate:
        raise DuplicateModuleError(module_name)

    policy.module_name = module_name
    policy.duration_months = duration_months
    policy.auto_action = action
    policy.is_enabled = enabled

    db.add(policy)
    db.commit()
    db.refresh(policy)

    logger.info(
        f"Updated retention policy: {module_name}",
        extra={"event": "policy_updated", "policy_id": policy.id},
    )
    return policy


def toggle_enabled(db: Session, policy_id: int) -> RetentionPolicy:
    """Flip a policy between enabled and disabled."""
    policy = get_policy(db, policy_id)
    policy.is_enabled = not policy.is_enabled

    db.add(policy)
    db.commit()
    db.refresh(policy)

    state = "enabled" if policy.is_enabled else "disabled"
    logger.info(
        f"Retention policy {policy.module_name} {state}",
        extra={"event": "policy_toggled", "policy_id": policy.id},
    )
    return policy


def list_policies(db: Session, page: int = 1, page_size: int = 10) -> PolicyPage:
    """List retention policies ordered by module name, one page at a time."""
    if page_size < 1:
        raise ValueError("Page size must be at least 1")
    total = db.query(func.count(RetentionPolicy.id)).scalar() or 0
    total_pages = -(-total // page_size)
    page = max(1, min(page, max(1, total_pages)))

    items = (
        db.query(RetentionPolicy)
        .order_by(RetentionPolicy.module_name)
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return PolicyPage(items=items, total=total, page=page, total_pages=total_pages)


def ensure_default_policies(db: Session) -> list[RetentionPolicy]:
    """
    Create the standard document-type policies that don't exist yet.

    Existing policies are left untouched, including their enabled flag.
    Returns the policies that were created.
    """
    created = []
    for module_name, config in DEFAULT_POLICIES.items():
        if get_policy_by_module(db, module_name):
            continue
        created.append(
            create_policy(
                db,
                module_name=module_name,
                duration_months=config["duration_months"],
                auto_action=config["auto_action"].value,
                enabled=True,
            )
        )
        logger.info(f"Created default retention policy: {module_name}")
    return created
