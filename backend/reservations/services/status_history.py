"""Status history ledger helpers.

The ledger is an append-only list embedded in each record. These helpers are
pure: they return new lists and never touch the one they were given, so the
caller can write the result in the same guarded update as the status change.
"""
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from reservations.models.event import EventStatus
from reservations.services.permissions import Actor


def history_entry(
    status: EventStatus,
    actor: Actor,
    reason: str,
    changed_at: Optional[datetime] = None,
) -> dict[str, Any]:
    return {
        "status": EventStatus(status).value,
        "changed_at": (changed_at or datetime.now(timezone.utc)).isoformat(),
        "changed_by": actor.user_id,
        "changed_by_email": actor.email,
        "reason": reason,
    }


def append_status_change(
    history: Optional[Sequence[dict[str, Any]]],
    new_status: EventStatus,
    actor: Actor,
    reason: str,
) -> list[dict[str, Any]]:
    """Return ``history`` plus one new entry (copy-on-append)."""
    return [*(history or []), history_entry(new_status, actor, reason)]


def restore_target(history: Optional[Sequence[dict[str, Any]]]) -> EventStatus:
    """Status a deleted record should return to.

    Scans backward from the entry before the most recent ``deleted`` entry and
    returns the first non-deleted status; ``draft`` when there is none.
    """
    entries = list(history or [])
    last_deleted = None
    for index in range(len(entries) - 1, -1, -1):
        if entries[index].get("status") == EventStatus.deleted.value:
            last_deleted = index
            break
    start = last_deleted - 1 if last_deleted is not None else len(entries) - 1

    for index in range(start, -1, -1):
        status = entries[index].get("status")
        if status and status != EventStatus.deleted.value:
            try:
                return EventStatus(status)
            except ValueError:
                continue
    return EventStatus.draft
