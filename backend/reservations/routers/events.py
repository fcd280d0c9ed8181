"""Event API routes — delegates to event_service for workflow enforcement."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from reservations.database import get_db
from reservations.dependencies import get_actor, get_calendar, get_delegated_token, get_notifier, get_permissions
from reservations.schemas.event import (
    AuditEntryOut,
    EventCreate,
    EventOut,
    EventUpdate,
    PublishRequest,
    RejectRequest,
    ResubmitRequest,
    TransitionOut,
    VersionedAction,
)
from reservations.services import event_service
from reservations.services.event_service import TransitionResult
from reservations.services.permissions import Actor

logger = logging.getLogger(__name__)
router = APIRouter()


def event_out(record) -> EventOut:
    return EventOut.model_validate(record.to_document())


def transition_out(result: TransitionResult, message: str) -> TransitionOut:
    return TransitionOut(
        message=message,
        event=event_out(result.event),
        graph_synced=result.graph_synced,
        changes=[c.to_dict() for c in result.changes],
    )


@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(payload: EventCreate, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    """Create a new draft owned by the actor."""
    record = event_service.create_draft(
        db,
        actor,
        payload.details.model_dump(exclude_unset=True),
        requester_email=payload.requester_email,
        calendar_owner=payload.calendar_owner,
        calendar_id=payload.calendar_id,
    )
    return event_out(record)


@router.get("/", response_model=list[EventOut])
def list_events(
    status_filter: Optional[str] = Query(None, alias="status"),
    owner_id: Optional[str] = Query(None),
    include_deleted: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """List events with optional filters."""
    records = event_service.list_events(
        db, status=status_filter, owner_id=owner_id, include_deleted=include_deleted, skip=skip, limit=limit
    )
    return [event_out(r) for r in records]


@router.get("/{event_id}", response_model=EventOut)
def get_event(event_id: str, db: Session = Depends(get_db)):
    return event_out(event_service.get_event(db, event_id))


@router.put("/{event_id}", response_model=TransitionOut)
def update_event(
    event_id: str,
    payload: EventUpdate,
    actor: Actor = Depends(get_actor),
    permissions=Depends(get_permissions),
    calendar=Depends(get_calendar),
    notifier=Depends(get_notifier),
    token: Optional[str] = Depends(get_delegated_token),
    db: Session = Depends(get_db),
):
    """Edit payload fields directly (owner before review, approvers any time)."""
    result = event_service.update_event(
        db, event_id, actor, payload.changes, payload.version,
        permissions=permissions, calendar=calendar, notifier=notifier, delegated_token=token,
    )
    return transition_out(result, "Event updated")


@router.post("/{event_id}/submit", response_model=TransitionOut)
def submit_event(
    event_id: str,
    payload: VersionedAction,
    actor: Actor = Depends(get_actor),
    permissions=Depends(get_permissions),
    db: Session = Depends(get_db),
):
    result = event_service.submit_event(db, event_id, actor, payload.version, permissions=permissions)
    return transition_out(result, "Event submitted for review")


@router.post("/{event_id}/publish", response_model=TransitionOut)
def publish_event(
    event_id: str,
    payload: PublishRequest,
    actor: Actor = Depends(get_actor),
    permissions=Depends(get_permissions),
    calendar=Depends(get_calendar),
    notifier=Depends(get_notifier),
    token: Optional[str] = Depends(get_delegated_token),
    db: Session = Depends(get_db),
):
    """Approve a pending event, optionally adjusting its details."""
    result = event_service.publish_event(
        db, event_id, actor, payload.version,
        permissions=permissions, approver_changes=payload.approver_changes,
        calendar=calendar, notifier=notifier, delegated_token=token,
    )
    return transition_out(result, "Event published")


@router.post("/{event_id}/reject", response_model=TransitionOut)
def reject_event(
    event_id: str,
    payload: RejectRequest,
    actor: Actor = Depends(get_actor),
    permissions=Depends(get_permissions),
    db: Session = Depends(get_db),
):
    result = event_service.reject_event(db, event_id, actor, payload.reason, payload.version, permissions=permissions)
    return transition_out(result, "Event rejected")


@router.post("/{event_id}/resubmit", response_model=TransitionOut)
def resubmit_event(
    event_id: str,
    payload: ResubmitRequest,
    actor: Actor = Depends(get_actor),
    permissions=Depends(get_permissions),
    db: Session = Depends(get_db),
):
    result = event_service.resubmit_event(
        db, event_id, actor, payload.version, permissions=permissions, changes=payload.changes
    )
    return transition_out(result, "Event resubmitted for review")


@router.post("/{event_id}/delete", response_model=TransitionOut)
def delete_event(
    event_id: str,
    payload: VersionedAction,
    actor: Actor = Depends(get_actor),
    permissions=Depends(get_permissions),
    calendar=Depends(get_calendar),
    token: Optional[str] = Depends(get_delegated_token),
    db: Session = Depends(get_db),
):
    """Soft delete; repeating it on a deleted event is a successful no-op."""
    result = event_service.delete_event(
        db, event_id, actor, payload.version, permissions=permissions, calendar=calendar, delegated_token=token
    )
    if not result.mutated:
        return transition_out(result, "Event already deleted")
    return transition_out(result, "Event deleted")


@router.post("/{event_id}/restore", response_model=TransitionOut)
def restore_event(
    event_id: str,
    payload: VersionedAction,
    actor: Actor = Depends(get_actor),
    permissions=Depends(get_permissions),
    calendar=Depends(get_calendar),
    token: Optional[str] = Depends(get_delegated_token),
    db: Session = Depends(get_db),
):
    result = event_service.restore_event(
        db, event_id, actor, payload.version, permissions=permissions, calendar=calendar, delegated_token=token
    )
    return transition_out(result, f"Event restored to {result.event.status.value}")


@router.get("/{event_id}/audit", response_model=list[AuditEntryOut])
def get_audit_trail(
    event_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_actor),
    permissions=Depends(get_permissions),
    db: Session = Depends(get_db),
):
    """Audit history of one event, newest first."""
    return event_service.get_audit_trail(db, event_id, actor, permissions=permissions, skip=skip, limit=limit)
