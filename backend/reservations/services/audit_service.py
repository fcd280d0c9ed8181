"""Audit log — one immutable entry per mutating action.

Audit writes happen after the primary write has committed. A failed insert
is rolled back and logged; it never undoes or fails the business action.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reservations.models.audit_entry import AuditEntry
from reservations.services.permissions import Actor

logger = logging.getLogger(__name__)


def record_audit(
    db: Session,
    event_id: str,
    action: str,
    performed_by: Actor,
    previous_state: Optional[dict[str, Any]] = None,
    new_state: Optional[dict[str, Any]] = None,
    changes: Optional[dict[str, Any]] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> Optional[AuditEntry]:
    """Insert an audit entry; returns ``None`` if the insert failed."""
    entry = AuditEntry(
        event_id=event_id,
        action=action,
        performed_by=performed_by.user_id,
        performed_by_email=performed_by.email,
        timestamp=datetime.now(timezone.utc),
        previous_state=previous_state,
        new_state=new_state,
        changes=changes,
        metadata_=metadata,
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to write audit entry '%s' for event %s", action, event_id)
        return None
    logger.debug("Audit '%s' recorded for event %s", action, event_id)
    return entry


def list_audit_entries(db: Session, event_id: str, skip: int = 0, limit: int = 50) -> list[AuditEntry]:
    """Audit trail for one event, newest first."""
    return (
        db.query(AuditEntry)
        .filter(AuditEntry.event_id == event_id)
        .order_by(AuditEntry.timestamp.desc(), AuditEntry.audit_id)
        .offset(skip)
        .limit(limit)
        .all()
    )
