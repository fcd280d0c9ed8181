"""Event lifecycle service — the approval workflow state machine.

Responsibilities:
- Legal transitions: submit, publish, reject, resubmit, delete, restore, plus
  the edit-request sub-workflow on published events
- Optimistic locking: every write goes through ``conditional_update`` with the
  caller's version and the status the transition starts from
- Status history: appended in the same write as the status change
- Audit log: one entry per committed action
- Best-effort follow-ups after commit: calendar sync and change notifications

Checks run in a fixed order so callers get the most specific error:
input validation, load (404), stale version (409), permission (403),
legality (400), then the guarded write (404/409). Nothing is written until
every check has passed.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from reservations.config import settings
from reservations.models.audit_entry import AuditAction
from reservations.models.event import EventRecord, EventStatus, EditRequestStatus
from reservations.schemas.event import EventDetails
from reservations.services import audit_service, sync_gate
from reservations.services.calendar_client import CalendarClient
from reservations.services.change_detection import (
    FieldChange,
    changed_fields,
    key_field_diff,
    merge_edit_request,
)
from reservations.services.concurrency import CONFLICT_SNAPSHOT_FIELDS, conditional_update, conflict_from
from reservations.services.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from reservations.services.notifications import NotificationDispatcher
from reservations.services.permissions import (
    APPROVE,
    APPROVE_OWN,
    DELETE,
    EDIT_ANY,
    REJECT,
    RESTORE,
    SUBMIT,
    VIEW_AUDIT,
    Actor,
    PermissionOracle,
)
from reservations.services.status_history import append_status_change, history_entry, restore_target

logger = logging.getLogger(__name__)

REQUIRED_FOR_SUBMIT = ("event_title", "start_date_time", "end_date_time")


@dataclass
class TransitionResult:
    event: EventRecord
    mutated: bool = True
    graph_synced: bool = False
    changes: list[FieldChange] = field(default_factory=list)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _criteria(record: EventRecord) -> list:
    return [EventRecord.event_id == record.event_id]


def _status_values(status: EventStatus) -> dict[str, Any]:
    """Status and its denormalized deleted flag, always written together."""
    return {"status": status, "is_deleted": status == EventStatus.deleted}


def _transition(old: EventStatus, new: EventStatus) -> dict[str, Any]:
    return {"status": {"from": EventStatus(old).value, "to": EventStatus(new).value}}


def validate_details(changes: Optional[dict[str, Any]], field_name: str = "changes") -> dict[str, Any]:
    """Check payload keys and value types against the closed field set."""
    try:
        return EventDetails.model_validate(changes or {}).model_dump(exclude_unset=True)
    except PydanticValidationError as exc:
        bad = ", ".join(".".join(str(p) for p in err["loc"]) or field_name for err in exc.errors())
        raise ValidationError(f"Invalid event fields: {bad}", field=field_name) from exc


def _missing_required(data: dict[str, Any]) -> list[str]:
    return [f for f in REQUIRED_FOR_SUBMIT if not str(data.get(f) or "").strip()]


def _pin_version(record: EventRecord, expected_version: Optional[int], action: str) -> int:
    """Resolve the version the write will be conditioned on.

    A stale ``expected_version`` fails here with the current state. Without
    one, the write is still pinned to the version just read.
    """
    if expected_version is None:
        if settings.REQUIRE_EXPECTED_VERSION:
            raise ValidationError("version is required", field="version")
        logger.warning(
            "%s on event %s without an expected version; pinning to stored version %d",
            action, record.event_id, record.version,
        )
        return record.version
    if expected_version != record.version:
        logger.warning(
            "Stale %s on event %s: caller saw version %d, stored version is %d",
            action, record.event_id, expected_version, record.version,
        )
        raise conflict_from(record, CONFLICT_SNAPSHOT_FIELDS)
    return expected_version


def _require(permissions: PermissionOracle, actor: Actor, capability: str, message: str) -> None:
    if not permissions.has_capability(actor, capability):
        raise PermissionDeniedError(message)


def _audit(
    db: Session,
    action: AuditAction,
    actor: Actor,
    before: dict[str, Any],
    updated: EventRecord,
    changes: Optional[dict[str, Any]] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    audit_service.record_audit(
        db,
        event_id=updated.event_id,
        action=action.value,
        performed_by=actor,
        previous_state=before,
        new_state=updated.to_document(),
        changes=changes,
        metadata=metadata,
    )


def _notify(
    notifier: Optional[NotificationDispatcher],
    recipient: Optional[str],
    record: EventRecord,
    diff: list[FieldChange],
) -> bool:
    if notifier is None or not diff or not recipient:
        return False
    try:
        notifier.send_change_notification(recipient, record.title, diff)
    except Exception:
        logger.exception("Change notification for event %s to %s failed", record.event_id, recipient)
        return False
    return True


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_event(db: Session, event_id: str) -> EventRecord:
    record = db.query(EventRecord).filter(EventRecord.event_id == event_id).first()
    if not record:
        raise NotFoundError("Event", event_id)
    return record


def list_events(
    db: Session,
    status: Optional[str] = None,
    owner_id: Optional[str] = None,
    include_deleted: bool = False,
    skip: int = 0,
    limit: int = 50,
) -> list[EventRecord]:
    """List records newest first. Deleted records only appear when asked for."""
    query = db.query(EventRecord)
    if status:
        try:
            query = query.filter(EventRecord.status == EventStatus(status))
        except ValueError as exc:
            raise ValidationError(f"Unknown status: {status}", field="status") from exc
    elif not include_deleted:
        query = query.filter(EventRecord.is_deleted.is_(False))
    if owner_id:
        query = query.filter(EventRecord.created_by == owner_id)
    return query.order_by(EventRecord.created_at.desc(), EventRecord.id).offset(skip).limit(limit).all()


def list_pending_edit_requests(db: Session, skip: int = 0, limit: int = 50) -> list[EventRecord]:
    records = (
        db.query(EventRecord)
        .filter(EventRecord.status == EventStatus.published, EventRecord.pending_edit_request.isnot(None))
        .order_by(EventRecord.last_modified_at.desc(), EventRecord.id)
        .all()
    )
    pending = [r for r in records if r.has_pending_edit_request]
    return pending[skip:skip + limit]


def get_audit_trail(
    db: Session,
    event_id: str,
    actor: Actor,
    *,
    permissions: PermissionOracle,
    skip: int = 0,
    limit: int = 50,
):
    record = get_event(db, event_id)
    if not (permissions.has_capability(actor, VIEW_AUDIT) or permissions.owns(actor, record)):
        raise PermissionDeniedError("Not allowed to view the audit trail of this event")
    return audit_service.list_audit_entries(db, record.event_id, skip=skip, limit=limit)


# ---------------------------------------------------------------------------
# Creation and direct edits
# ---------------------------------------------------------------------------

def create_draft(
    db: Session,
    actor: Actor,
    details: dict[str, Any],
    *,
    requester_email: Optional[str] = None,
    calendar_owner: Optional[str] = None,
    calendar_id: Optional[str] = None,
) -> EventRecord:
    """Insert a new draft at version 1 with a single history entry."""
    data = validate_details(details, "details")
    now = _now()
    record = EventRecord(
        event_id=str(uuid.uuid4()),
        status=EventStatus.draft,
        version=1,
        is_deleted=False,
        status_history=[history_entry(EventStatus.draft, actor, "Draft created")],
        calendar_data=data,
        created_by=actor.user_id,
        requester_email=requester_email or actor.email,
        calendar_owner=calendar_owner or settings.CALENDAR_OWNER or None,
        calendar_id=calendar_id or settings.CALENDAR_ID or None,
        created_at=now,
        last_modified_at=now,
        last_modified_by=actor.user_id,
    )
    db.add(record)
    db.commit()
    db.refresh(record)

    audit_service.record_audit(
        db,
        event_id=record.event_id,
        action=AuditAction.create.value,
        performed_by=actor,
        new_state=record.to_document(),
    )
    logger.info("Created draft '%s' (%s) by %s", record.title, record.event_id, actor.email)
    return record


def update_event(
    db: Session,
    event_id: str,
    actor: Actor,
    changes: dict[str, Any],
    expected_version: Optional[int] = None,
    *,
    permissions: PermissionOracle,
    calendar: Optional[CalendarClient] = None,
    notifier: Optional[NotificationDispatcher] = None,
    delegated_token: Optional[str] = None,
) -> TransitionResult:
    """Direct edit of payload fields; the status does not change."""
    edits = validate_details(changes)
    if not edits:
        raise ValidationError("No changes supplied", field="changes")

    record = get_event(db, event_id)
    version = _pin_version(record, expected_version, "update")

    status = record.status
    is_owner = permissions.owns(actor, record)
    can_edit_any = permissions.has_capability(actor, EDIT_ANY)
    if status == EventStatus.published and not can_edit_any:
        raise PermissionDeniedError("Published events can only be changed through an edit request")
    if status in (EventStatus.draft, EventStatus.pending) and not (is_owner or can_edit_any):
        raise PermissionDeniedError("Only the owner or an approver can edit this event")
    if status == EventStatus.rejected:
        raise InvalidTransitionError("update", status.value, "Rejected events must be resubmitted to be edited")
    if status == EventStatus.deleted:
        raise InvalidTransitionError("update", status.value)

    before = record.to_document()
    original = dict(record.calendar_data or {})
    changed = changed_fields(original, edits)
    diff = key_field_diff(original, edits)

    updated = conditional_update(
        db,
        _criteria(record),
        {"calendar_data": {**original, **edits}},
        expected_version=version,
        expected_status=status,
        modified_by=actor.user_id,
        snapshot_fields=CONFLICT_SNAPSHOT_FIELDS,
    )
    _audit(
        db, AuditAction.update, actor, before, updated,
        changes={"fields": {f: {"from": original.get(f), "to": edits[f]} for f in changed}},
    )

    if not changed:
        logger.info("Update of event %s changed no values", updated.event_id)
        return TransitionResult(event=updated)

    sync = sync_gate.sync_update(
        db, updated, {f: edits[f] for f in changed}, calendar, delegated_token=delegated_token
    )
    if not is_owner:
        _notify(notifier, updated.requester_email, sync.record, diff)
    logger.info("Updated event %s (%d field(s)) to version %d", updated.event_id, len(changed), sync.record.version)
    return TransitionResult(event=sync.record, graph_synced=sync.synced, changes=diff)


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------

def submit_event(
    db: Session,
    event_id: str,
    actor: Actor,
    expected_version: Optional[int] = None,
    *,
    permissions: PermissionOracle,
) -> TransitionResult:
    """draft -> pending."""
    record = get_event(db, event_id)
    version = _pin_version(record, expected_version, "submit")

    _require(permissions, actor, SUBMIT, "Not allowed to submit events")
    if not (permissions.owns(actor, record) or permissions.has_capability(actor, APPROVE)):
        raise PermissionDeniedError("Only the owner or an approver can submit this draft")
    if record.status != EventStatus.draft:
        raise InvalidTransitionError("submit", record.status.value)
    missing = _missing_required(record.calendar_data or {})
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

    before = record.to_document()
    updated = conditional_update(
        db,
        _criteria(record),
        {
            **_status_values(EventStatus.pending),
            "status_history": append_status_change(
                record.status_history, EventStatus.pending, actor, "Submitted for review"
            ),
        },
        expected_version=version,
        expected_status=EventStatus.draft,
        modified_by=actor.user_id,
        snapshot_fields=CONFLICT_SNAPSHOT_FIELDS,
    )
    _audit(db, AuditAction.submit, actor, before, updated,
           changes=_transition(EventStatus.draft, EventStatus.pending))
    logger.info("Event %s submitted for review by %s", updated.event_id, actor.email)
    return TransitionResult(event=updated)


def publish_event(
    db: Session,
    event_id: str,
    actor: Actor,
    expected_version: Optional[int] = None,
    *,
    permissions: PermissionOracle,
    approver_changes: Optional[dict[str, Any]] = None,
    calendar: Optional[CalendarClient] = None,
    notifier: Optional[NotificationDispatcher] = None,
    delegated_token: Optional[str] = None,
) -> TransitionResult:
    """pending -> published, optionally applying approver changes in the same write.

    The status write takes the version from N to N+1. When the calendar create
    succeeds its correlation ids are stored by a second write scoped to
    ``external_sync``, so a synced publish leaves the record at N+2. Folding
    both into one write would mean calling the calendar before the status
    commit, and a failed or conflicting publish would then leave a remote
    event behind.
    """
    overrides = validate_details(approver_changes, "approver_changes") if approver_changes else {}

    record = get_event(db, event_id)
    version = _pin_version(record, expected_version, "publish")

    _require(permissions, actor, APPROVE, "Approver role required to publish events")
    if record.status != EventStatus.pending:
        raise InvalidTransitionError("publish", record.status.value)
    if permissions.owns(actor, record) and not permissions.has_capability(actor, APPROVE_OWN):
        raise PermissionDeniedError("Approvers cannot publish their own requests")

    before = record.to_document()
    original = dict(record.calendar_data or {})
    review_changes = key_field_diff(original, overrides)

    values = {
        **_status_values(EventStatus.published),
        "status_history": append_status_change(record.status_history, EventStatus.published, actor, "Published"),
        "reviewed_at": _now(),
        "reviewed_by": actor.email,
        "rejection_reason": None,
    }
    if overrides:
        values["calendar_data"] = {**original, **overrides}

    updated = conditional_update(
        db,
        _criteria(record),
        values,
        expected_version=version,
        expected_status=EventStatus.pending,
        modified_by=actor.user_id,
        snapshot_fields=CONFLICT_SNAPSHOT_FIELDS,
    )
    changes = _transition(EventStatus.pending, EventStatus.published)
    if overrides:
        changes["approver_changes"] = overrides
    _audit(
        db, AuditAction.publish, actor, before, updated, changes=changes,
        metadata={"review_changes": [c.to_dict() for c in review_changes]} if review_changes else None,
    )
    logger.info("Event %s published by %s", updated.event_id, actor.email)

    sync = sync_gate.sync_create(db, updated, calendar, delegated_token=delegated_token)
    _notify(notifier, updated.requester_email, sync.record, review_changes)
    return TransitionResult(event=sync.record, graph_synced=sync.synced, changes=review_changes)


def reject_event(
    db: Session,
    event_id: str,
    actor: Actor,
    reason: Optional[str],
    expected_version: Optional[int] = None,
    *,
    permissions: PermissionOracle,
) -> TransitionResult:
    """pending -> rejected; a non-blank reason is mandatory."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Rejection reason is required", field="reason")

    record = get_event(db, event_id)
    version = _pin_version(record, expected_version, "reject")

    _require(permissions, actor, REJECT, "Approver role required to reject events")
    if record.status != EventStatus.pending:
        raise InvalidTransitionError("reject", record.status.value)

    before = record.to_document()
    updated = conditional_update(
        db,
        _criteria(record),
        {
            **_status_values(EventStatus.rejected),
            "status_history": append_status_change(record.status_history, EventStatus.rejected, actor, reason),
            "reviewed_at": _now(),
            "reviewed_by": actor.email,
            "rejection_reason": reason,
        },
        expected_version=version,
        expected_status=EventStatus.pending,
        modified_by=actor.user_id,
        snapshot_fields=CONFLICT_SNAPSHOT_FIELDS,
    )
    changes = _transition(EventStatus.pending, EventStatus.rejected)
    changes["reason"] = reason
    _audit(db, AuditAction.reject, actor, before, updated, changes=changes)
    logger.info("Event %s rejected by %s (reason: %s)", updated.event_id, actor.email, reason)
    return TransitionResult(event=updated)


def resubmit_event(
    db: Session,
    event_id: str,
    actor: Actor,
    expected_version: Optional[int] = None,
    *,
    permissions: PermissionOracle,
    changes: Optional[dict[str, Any]] = None,
) -> TransitionResult:
    """rejected -> pending, by the owner, optionally with edits."""
    edits = validate_details(changes) if changes else {}

    record = get_event(db, event_id)
    version = _pin_version(record, expected_version, "resubmit")

    if not permissions.owns(actor, record):
        raise PermissionDeniedError("Only the owner can resubmit this event")
    if record.status != EventStatus.rejected:
        raise InvalidTransitionError("resubmit", record.status.value)
    if not record.resubmission_allowed:
        raise InvalidTransitionError("resubmit", record.status.value, "Resubmission is not allowed for this event")

    original = dict(record.calendar_data or {})
    merged = {**original, **edits}
    missing = _missing_required(merged)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

    before = record.to_document()
    values = {
        **_status_values(EventStatus.pending),
        "status_history": append_status_change(
            record.status_history, EventStatus.pending, actor, "Resubmitted for review"
        ),
        "reviewed_at": None,
        "reviewed_by": None,
        "rejection_reason": None,
    }
    if edits:
        values["calendar_data"] = merged

    updated = conditional_update(
        db,
        _criteria(record),
        values,
        expected_version=version,
        expected_status=EventStatus.rejected,
        modified_by=actor.user_id,
        snapshot_fields=CONFLICT_SNAPSHOT_FIELDS,
    )
    audit_changes = _transition(EventStatus.rejected, EventStatus.pending)
    if edits:
        audit_changes["fields"] = edits
    _audit(db, AuditAction.resubmit, actor, before, updated, changes=audit_changes)
    logger.info("Event %s resubmitted by %s", updated.event_id, actor.email)
    return TransitionResult(event=updated)


def delete_event(
    db: Session,
    event_id: str,
    actor: Actor,
    expected_version: Optional[int] = None,
    *,
    permissions: PermissionOracle,
    calendar: Optional[CalendarClient] = None,
    delegated_token: Optional[str] = None,
) -> TransitionResult:
    """Soft delete from any live status. Deleting a deleted record is a no-op."""
    record = get_event(db, event_id)
    is_admin = permissions.has_capability(actor, DELETE)
    if not (is_admin or permissions.owns(actor, record)):
        raise PermissionDeniedError("Only the owner or an approver can delete this event")
    if record.status == EventStatus.deleted:
        logger.info("Event %s is already deleted", record.event_id)
        return TransitionResult(event=record, mutated=False)

    version = _pin_version(record, expected_version, "delete")

    before = record.to_document()
    previous = record.status
    reason = "Deleted by admin" if is_admin else "Deleted by owner"
    values = {
        **_status_values(EventStatus.deleted),
        "previous_status": previous,
        "deleted_at": _now(),
        "deleted_by": actor.user_id,
        "status_history": append_status_change(record.status_history, EventStatus.deleted, actor, reason),
    }
    metadata = None
    if record.has_pending_edit_request:
        # An edit request cannot outlive the published state it targets.
        values["pending_edit_request"] = None
        metadata = {"edit_request": {
            **record.pending_edit_request,
            "status": EditRequestStatus.cancelled.value,
            "reviewed_at": _now().isoformat(),
            "review_notes": "Closed by delete",
        }}
    updated = conditional_update(
        db,
        _criteria(record),
        values,
        expected_version=version,
        expected_status=previous,
        modified_by=actor.user_id,
        snapshot_fields=CONFLICT_SNAPSHOT_FIELDS,
    )
    _audit(
        db, AuditAction.delete, actor, before, updated,
        changes=_transition(previous, EventStatus.deleted), metadata=metadata,
    )
    logger.info("Event %s deleted by %s (was %s)", updated.event_id, actor.email, previous.value)

    sync = sync_gate.sync_delete(db, updated, calendar, delegated_token=delegated_token)
    return TransitionResult(event=sync.record, graph_synced=sync.synced)


def restore_event(
    db: Session,
    event_id: str,
    actor: Actor,
    expected_version: Optional[int] = None,
    *,
    permissions: PermissionOracle,
    calendar: Optional[CalendarClient] = None,
    delegated_token: Optional[str] = None,
) -> TransitionResult:
    """deleted -> the last live status recorded in the history (``draft`` if none)."""
    record = get_event(db, event_id)
    version = _pin_version(record, expected_version, "restore")

    is_admin = permissions.has_capability(actor, RESTORE)
    if not (is_admin or permissions.owns(actor, record)):
        raise PermissionDeniedError("Admin role or ownership required to restore this event")
    if record.status != EventStatus.deleted:
        raise InvalidTransitionError("restore", record.status.value)

    before = record.to_document()
    target = restore_target(record.status_history)
    reason = "Restored by admin" if is_admin else "Restored by owner"
    updated = conditional_update(
        db,
        _criteria(record),
        {
            **_status_values(target),
            "previous_status": None,
            "deleted_at": None,
            "deleted_by": None,
            "status_history": append_status_change(record.status_history, target, actor, reason),
        },
        expected_version=version,
        expected_status=EventStatus.deleted,
        modified_by=actor.user_id,
        snapshot_fields=CONFLICT_SNAPSHOT_FIELDS,
    )
    _audit(db, AuditAction.restore, actor, before, updated, changes=_transition(EventStatus.deleted, target))
    logger.info("Event %s restored to %s by %s", updated.event_id, target.value, actor.email)

    if target == EventStatus.published and sync_gate.external_id(updated):
        sync = sync_gate.sync_create(db, updated, calendar, delegated_token=delegated_token)
        return TransitionResult(event=sync.record, graph_synced=sync.synced)
    return TransitionResult(event=updated)


# ---------------------------------------------------------------------------
# Edit requests on published events
# ---------------------------------------------------------------------------

def request_edit(
    db: Session,
    event_id: str,
    actor: Actor,
    requested_changes: Optional[dict[str, Any]],
    reason: Optional[str],
    expected_version: Optional[int] = None,
    *,
    permissions: PermissionOracle,
) -> TransitionResult:
    """Attach a pending edit request to a published event owned by the actor."""
    reason = (reason or "").strip()
    if not requested_changes or not reason:
        raise ValidationError("requested_changes and reason are required")
    proposed = validate_details(requested_changes, "requested_changes")
    if not proposed:
        raise ValidationError("requested_changes and reason are required", field="requested_changes")

    record = get_event(db, event_id)
    version = _pin_version(record, expected_version, "request_edit")

    if not permissions.owns(actor, record):
        raise PermissionDeniedError("You can only request edits on your own events")
    if record.status != EventStatus.published:
        raise InvalidTransitionError(
            "request_edit", record.status.value, "Can only request edits on published events"
        )
    if record.has_pending_edit_request:
        raise InvalidTransitionError(
            "request_edit", record.status.value, "An edit request already exists for this event"
        )

    before = record.to_document()
    envelope = {
        "id": str(uuid.uuid4()),
        "requested_at": _now().isoformat(),
        "requested_by": actor.user_id,
        "requested_by_email": actor.email,
        "requested_changes": proposed,
        "reason": reason,
        "status": EditRequestStatus.pending.value,
    }
    updated = conditional_update(
        db,
        _criteria(record),
        {"pending_edit_request": envelope},
        expected_version=version,
        expected_status=EventStatus.published,
        modified_by=actor.user_id,
        snapshot_fields=CONFLICT_SNAPSHOT_FIELDS,
        increments={"edit_request_count": 1},
    )
    _audit(db, AuditAction.request_edit, actor, before, updated,
           changes={"requested_changes": proposed, "reason": reason})
    logger.info("Edit request %s created on event %s by %s", envelope["id"], updated.event_id, actor.email)
    return TransitionResult(event=updated)


def _pending_envelope(record: EventRecord, action: str) -> dict[str, Any]:
    if record.status != EventStatus.published or not record.has_pending_edit_request:
        raise InvalidTransitionError(action, record.status.value, "No pending edit request for this event")
    return dict(record.pending_edit_request)


def approve_edit(
    db: Session,
    event_id: str,
    actor: Actor,
    expected_version: Optional[int] = None,
    *,
    permissions: PermissionOracle,
    approver_changes: Optional[dict[str, Any]] = None,
    calendar: Optional[CalendarClient] = None,
    notifier: Optional[NotificationDispatcher] = None,
    delegated_token: Optional[str] = None,
) -> TransitionResult:
    """Apply the merged proposal to a published event and clear the request."""
    overrides = validate_details(approver_changes, "approver_changes") if approver_changes else {}

    record = get_event(db, event_id)
    version = _pin_version(record, expected_version, "approve_edit")

    _require(permissions, actor, APPROVE, "Approver role required to approve edit requests")
    envelope = _pending_envelope(record, "approve_edit")

    before = record.to_document()
    original = dict(record.calendar_data or {})
    proposed = envelope.get("requested_changes") or {}
    final = merge_edit_request(original, proposed, overrides)
    changed = changed_fields(original, final)
    diff = key_field_diff(original, final)

    closed = {
        **envelope,
        "status": EditRequestStatus.approved.value,
        "reviewed_at": _now().isoformat(),
        "reviewed_by": actor.email,
        "approver_changes": overrides or None,
    }
    updated = conditional_update(
        db,
        _criteria(record),
        {"calendar_data": {**original, **final}, "pending_edit_request": None},
        expected_version=version,
        expected_status=EventStatus.published,
        modified_by=actor.user_id,
        snapshot_fields=CONFLICT_SNAPSHOT_FIELDS,
    )
    _audit(
        db, AuditAction.approve_edit, actor, before, updated,
        changes=final,
        metadata={
            "edit_request": closed,
            "original_proposed_changes": proposed,
            "approver_changes": overrides or None,
            "key_changes": [c.to_dict() for c in diff],
        },
    )
    logger.info("Edit request %s approved on event %s by %s", envelope.get("id"), updated.event_id, actor.email)

    sync = sync_gate.sync_update(
        db, updated, {f: final[f] for f in changed}, calendar, delegated_token=delegated_token
    )
    recipient = envelope.get("requested_by_email") or updated.requester_email
    _notify(notifier, recipient, sync.record, diff)
    return TransitionResult(event=sync.record, graph_synced=sync.synced, changes=diff)


def reject_edit(
    db: Session,
    event_id: str,
    actor: Actor,
    reason: Optional[str],
    expected_version: Optional[int] = None,
    *,
    permissions: PermissionOracle,
) -> TransitionResult:
    """Discard the proposed changes; a non-blank reason is mandatory."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Rejection reason is required", field="reason")

    record = get_event(db, event_id)
    version = _pin_version(record, expected_version, "reject_edit")

    _require(permissions, actor, APPROVE, "Approver role required to reject edit requests")
    envelope = _pending_envelope(record, "reject_edit")

    before = record.to_document()
    closed = {
        **envelope,
        "status": EditRequestStatus.rejected.value,
        "reviewed_at": _now().isoformat(),
        "reviewed_by": actor.email,
        "review_notes": reason,
    }
    updated = conditional_update(
        db,
        _criteria(record),
        {"pending_edit_request": None},
        expected_version=version,
        expected_status=EventStatus.published,
        modified_by=actor.user_id,
        snapshot_fields=CONFLICT_SNAPSHOT_FIELDS,
    )
    _audit(db, AuditAction.reject_edit, actor, before, updated,
           changes={"rejection_reason": reason}, metadata={"edit_request": closed})
    logger.info("Edit request %s rejected on event %s by %s", envelope.get("id"), updated.event_id, actor.email)
    return TransitionResult(event=updated)


def cancel_edit_request(
    db: Session,
    event_id: str,
    actor: Actor,
    expected_version: Optional[int] = None,
    *,
    permissions: PermissionOracle,
) -> TransitionResult:
    """Withdraw a pending edit request; only its requester may do so."""
    record = get_event(db, event_id)
    version = _pin_version(record, expected_version, "cancel_edit_request")

    envelope = record.pending_edit_request or {}
    if envelope and envelope.get("requested_by") != actor.user_id:
        raise PermissionDeniedError("Only the requester can cancel this edit request")
    envelope = _pending_envelope(record, "cancel_edit_request")

    before = record.to_document()
    closed = {
        **envelope,
        "status": EditRequestStatus.cancelled.value,
        "reviewed_at": _now().isoformat(),
        "review_notes": "Cancelled by requester",
    }
    updated = conditional_update(
        db,
        _criteria(record),
        {"pending_edit_request": None},
        expected_version=version,
        expected_status=EventStatus.published,
        modified_by=actor.user_id,
        snapshot_fields=CONFLICT_SNAPSHOT_FIELDS,
    )
    _audit(db, AuditAction.cancel_edit_request, actor, before, updated, metadata={"edit_request": closed})
    logger.info("Edit request %s cancelled on event %s", envelope.get("id"), updated.event_id)
    return TransitionResult(event=updated)
