"""AuditEntry ORM model — one immutable row per mutating action."""
import uuid
import enum
from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func

from reservations.database import Base


class AuditEntry(Base):
    __tablename__ = "audit_history"

    audit_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    performed_by = Column(String(36), nullable=False)
    performed_by_email = Column(String(255), nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    previous_state = Column(JSON, nullable=True)
    new_state = Column(JSON, nullable=True)
    changes = Column(JSON, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)


class AuditAction(str, enum.Enum):
    create = "create"
    update = "update"
    submit = "submit"
    publish = "publish"
    reject = "reject"
    resubmit = "resubmit"
    delete = "delete"
    restore = "restore"
    request_edit = "request_edit"
    approve_edit = "approve_edit"
    reject_edit = "reject_edit"
    cancel_edit_request = "cancel_edit_request"
