"""
Audit sink for lifecycle actions.

Insert-only. Recording is fire-and-forget: a failure here is logged and
swallowed so it never undoes or blocks the state transition it describes.
Call it after the transition has been committed.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from clinidoc.models import AuditAction, AuditLog

logger = logging.getLogger(__name__)

MAX_DETAILS_LENGTH = 500


def record(
    db: Session,
    action: AuditAction,
    entity_type: str,
    entity_id: int,
    details: str,
    acting_user: Optional[str],
    timestamp: Optional[datetime] = None,
) -> Optional[AuditLog]:
    """
    Write one audit entry and commit it.

    Returns the entry, or None if it could not be written.
    """
    try:
        entry = AuditLog(
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
            details=(details or "")[:MAX_DETAILS_LENGTH],
            user_id=acting_user,
            timestamp=timestamp or datetime.utcnow(),
        )
        db.add(entry)
        db.commit()
        return entry
    except Exception as e:
        logger.warning(
            f"Failed to record audit entry {action.value} {entity_type}:{entity_id}: {e}",
            extra={"event": "audit_failed"},
        )
        try:
            db.rollback()
        except Exception as rollback_error:
            logger.warning(f"Rollback after audit failure also failed: {rollback_error}")
        return None
