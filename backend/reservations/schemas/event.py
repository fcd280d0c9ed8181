"""Pydantic schemas for event records."""
from __future__ import annotations
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field


class EventDetails(BaseModel):
    """Closed set of payload fields an event may carry."""

    event_title: Optional[str] = None
    event_description: Optional[str] = None
    start_date_time: Optional[str] = None  # local ISO, e.g. 2026-03-01T10:00
    end_date_time: Optional[str] = None
    locations: Optional[list[str]] = None
    location_display_names: Optional[list[str]] = None
    attendee_count: Optional[int] = None
    categories: Optional[list[str]] = None
    setup_time: Optional[str] = None
    teardown_time: Optional[str] = None
    door_open_time: Optional[str] = None
    door_close_time: Optional[str] = None
    special_requirements: Optional[str] = None
    is_offsite: Optional[bool] = None
    offsite_name: Optional[str] = None
    offsite_address: Optional[str] = None
    services: Optional[dict[str, Any]] = None

    model_config = {"extra": "forbid"}


class EventCreate(BaseModel):
    details: EventDetails
    requester_email: Optional[str] = None
    calendar_owner: Optional[str] = None
    calendar_id: Optional[str] = None


class EventUpdate(BaseModel):
    changes: dict[str, Any]
    version: Optional[int] = None  # optimistic-concurrency token


class VersionedAction(BaseModel):
    version: Optional[int] = None


class PublishRequest(VersionedAction):
    approver_changes: Optional[dict[str, Any]] = None


class RejectRequest(VersionedAction):
    reason: str = ""


class ResubmitRequest(VersionedAction):
    changes: Optional[dict[str, Any]] = None


class StatusHistoryEntryOut(BaseModel):
    status: str
    changed_at: str
    changed_by: Optional[str] = None
    changed_by_email: Optional[str] = None
    reason: Optional[str] = None


class EventOut(BaseModel):
    event_id: str
    status: str
    version: int
    previous_status: Optional[str] = None
    is_deleted: bool
    status_history: list[StatusHistoryEntryOut] = []
    pending_edit_request: Optional[dict[str, Any]] = None
    external_sync: Optional[dict[str, Any]] = None
    calendar_data: dict[str, Any] = {}
    created_by: str
    requester_email: Optional[str] = None
    calendar_owner: Optional[str] = None
    calendar_id: Optional[str] = None
    resubmission_allowed: bool
    edit_request_count: int = 0
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    created_at: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None
    last_modified_by: Optional[str] = None

    model_config = {"from_attributes": True}


class TransitionOut(BaseModel):
    success: bool = True
    message: Optional[str] = None
    event: EventOut
    graph_synced: bool = False
    changes: list[dict[str, Any]] = []


class AuditEntryOut(BaseModel):
    audit_id: str
    event_id: str
    action: str
    performed_by: str
    performed_by_email: Optional[str] = None
    timestamp: datetime
    previous_state: Optional[dict[str, Any]] = None
    new_state: Optional[dict[str, Any]] = None
    changes: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = Field(default=None, validation_alias="metadata_")

    model_config = {"from_attributes": True}
