"""EventRecord ORM model — the aggregate root of the approval workflow."""
import uuid
import enum
from datetime import datetime
from typing import Any

from sqlalchemy import Column, String, DateTime, Integer, Boolean, JSON, Enum as SAEnum
from sqlalchemy.sql import func

from reservations.database import Base


class EventStatus(str, enum.Enum):
    draft = "draft"
    pending = "pending"
    published = "published"
    rejected = "rejected"
    deleted = "deleted"


class EditRequestStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


def _new_id() -> str:
    return str(uuid.uuid4())


class EventRecord(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_new_id)
    event_id = Column(String(36), nullable=False, unique=True, index=True, default=_new_id)
    status = Column(SAEnum(EventStatus), nullable=False, default=EventStatus.draft, index=True)
    version = Column(Integer, nullable=False, default=1)
    previous_status = Column(SAEnum(EventStatus), nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    status_history = Column(JSON, nullable=False, default=list)
    pending_edit_request = Column(JSON(none_as_null=True), nullable=True)
    external_sync = Column(JSON(none_as_null=True), nullable=True)
    calendar_data = Column(JSON, nullable=False, default=dict)

    created_by = Column(String(36), nullable=False)
    requester_email = Column(String(255), nullable=True)
    calendar_owner = Column(String(255), nullable=True)
    calendar_id = Column(String(255), nullable=True)
    resubmission_allowed = Column(Boolean, nullable=False, default=True)
    edit_request_count = Column(Integer, nullable=False, default=0)

    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(String(255), nullable=True)
    rejection_reason = Column(String(1000), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_modified_at = Column(DateTime(timezone=True), server_default=func.now())
    last_modified_by = Column(String(255), nullable=True)

    @property
    def title(self) -> str:
        return (self.calendar_data or {}).get("event_title") or ""

    @property
    def has_pending_edit_request(self) -> bool:
        envelope = self.pending_edit_request
        return bool(envelope) and envelope.get("status") == EditRequestStatus.pending.value

    def to_document(self) -> dict[str, Any]:
        """JSON-safe view of the record, used for audit snapshots and conflict diffs."""
        return {
            "id": self.id,
            "event_id": self.event_id,
            "status": _enum_value(self.status),
            "version": self.version,
            "previous_status": _enum_value(self.previous_status),
            "is_deleted": bool(self.is_deleted),
            "status_history": list(self.status_history or []),
            "pending_edit_request": self.pending_edit_request,
            "external_sync": self.external_sync,
            "calendar_data": dict(self.calendar_data or {}),
            "created_by": self.created_by,
            "requester_email": self.requester_email,
            "calendar_owner": self.calendar_owner,
            "calendar_id": self.calendar_id,
            "resubmission_allowed": self.resubmission_allowed,
            "edit_request_count": self.edit_request_count or 0,
            "reviewed_at": _iso(self.reviewed_at),
            "reviewed_by": self.reviewed_by,
            "rejection_reason": self.rejection_reason,
            "deleted_at": _iso(self.deleted_at),
            "deleted_by": self.deleted_by,
            "created_at": _iso(self.created_at),
            "last_modified_at": _iso(self.last_modified_at),
            "last_modified_by": self.last_modified_by,
        }


def _enum_value(value):
    if value is None:
        return None
    return value.value if isinstance(value, enum.Enum) else value


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
