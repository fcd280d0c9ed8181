"""Edit-request API routes for published events."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from reservations.database import get_db
from reservations.dependencies import get_actor, get_calendar, get_delegated_token, get_notifier, get_permissions
from reservations.routers.events import event_out, transition_out
from reservations.schemas.edit_request import (
    EditRequestApprove,
    EditRequestCancel,
    EditRequestCreate,
    EditRequestReject,
)
from reservations.schemas.event import EventOut, TransitionOut
from reservations.services import event_service
from reservations.services.permissions import Actor

router = APIRouter()


@router.get("/edit-requests", response_model=list[EventOut])
def list_pending_edit_requests(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Published events carrying a pending edit request."""
    return [event_out(r) for r in event_service.list_pending_edit_requests(db, skip=skip, limit=limit)]


@router.post("/events/{event_id}/edit-request", response_model=TransitionOut)
def request_edit(
    event_id: str,
    payload: EditRequestCreate,
    actor: Actor = Depends(get_actor),
    permissions=Depends(get_permissions),
    db: Session = Depends(get_db),
):
    result = event_service.request_edit(
        db, event_id, actor, payload.requested_changes, payload.reason, payload.version, permissions=permissions
    )
    return transition_out(result, "Edit request submitted")


@router.post("/events/{event_id}/edit-request/approve", response_model=TransitionOut)
def approve_edit(
    event_id: str,
    payload: EditRequestApprove,
    actor: Actor = Depends(get_actor),
    permissions=Depends(get_permissions),
    calendar=Depends(get_calendar),
    notifier=Depends(get_notifier),
    token: Optional[str] = Depends(get_delegated_token),
    db: Session = Depends(get_db),
):
    """Apply the proposed changes, with approver overrides winning."""
    result = event_service.approve_edit(
        db, event_id, actor, payload.version,
        permissions=permissions, approver_changes=payload.approver_changes,
        calendar=calendar, notifier=notifier, delegated_token=token,
    )
    return transition_out(result, "Edit request approved")


@router.post("/events/{event_id}/edit-request/reject", response_model=TransitionOut)
def reject_edit(
    event_id: str,
    payload: EditRequestReject,
    actor: Actor = Depends(get_actor),
    permissions=Depends(get_permissions),
    db: Session = Depends(get_db),
):
    result = event_service.reject_edit(db, event_id, actor, payload.reason, payload.version, permissions=permissions)
    return transition_out(result, "Edit request rejected")


@router.post("/events/{event_id}/edit-request/cancel", response_model=TransitionOut)
def cancel_edit_request(
    event_id: str,
    payload: EditRequestCancel,
    actor: Actor = Depends(get_actor),
    permissions=Depends(get_permissions),
    db: Session = Depends(get_db),
):
    result = event_service.cancel_edit_request(db, event_id, actor, payload.version, permissions=permissions)
    return transition_out(result, "Edit request cancelled")
