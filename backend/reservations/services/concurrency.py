"""Optimistic concurrency guard for event records.

Every write to an ``EventRecord`` goes through :func:`conditional_update`, a
single ``UPDATE ... WHERE`` statement that only matches when the stored
``version`` (and optionally ``status``) still equal what the caller last saw.
The guard always bumps ``version`` by one and refreshes ``last_modified_at``.
When nothing matches, the record is re-read to tell a missing record (404)
from a stale one (409); the conflict carries the current state so the caller
can render a diff without another round trip.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, NamedTuple, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from reservations.models.event import EventRecord, EventStatus
from reservations.services.exceptions import NotFoundError, VersionConflictError

logger = logging.getLogger(__name__)


class SnapshotField(NamedTuple):
    key: str
    path: str
    label: str


CONFLICT_SNAPSHOT_FIELDS: tuple[SnapshotField, ...] = (
    SnapshotField("event_title", "calendar_data.event_title", "Event Title"),
    SnapshotField("event_description", "calendar_data.event_description", "Description"),
    SnapshotField("start_date_time", "calendar_data.start_date_time", "Start Date/Time"),
    SnapshotField("end_date_time", "calendar_data.end_date_time", "End Date/Time"),
    SnapshotField("setup_time", "calendar_data.setup_time", "Setup Time"),
    SnapshotField("teardown_time", "calendar_data.teardown_time", "Teardown Time"),
    SnapshotField("door_open_time", "calendar_data.door_open_time", "Door Open"),
    SnapshotField("door_close_time", "calendar_data.door_close_time", "Door Close"),
    SnapshotField("location_display_names", "calendar_data.location_display_names", "Location"),
    SnapshotField("attendee_count", "calendar_data.attendee_count", "Attendees"),
    SnapshotField("categories", "calendar_data.categories", "Categories"),
    SnapshotField("special_requirements", "calendar_data.special_requirements", "Special Requirements"),
    SnapshotField("status", "status", "Status"),
)

_MISSING = object()


def resolve_path(document: dict[str, Any], path: str) -> Any:
    """Walk a dotted path through nested dicts; returns a sentinel when any segment is absent."""
    current: Any = document
    for segment in path.split("."):
        if not isinstance(current, dict) or segment not in current:
            return _MISSING
        current = current[segment]
    return current


def build_snapshot(record: EventRecord, fields: Iterable[SnapshotField]) -> dict[str, Any]:
    """Read ``{key: value_at_path}`` from the record, leaving out paths that do not exist."""
    document = record.to_document()
    snapshot = {}
    for field in fields:
        value = resolve_path(document, field.path)
        if value is not _MISSING:
            snapshot[field.key] = value
    return snapshot


def conflict_from(
    record: EventRecord,
    snapshot_fields: Optional[Iterable[SnapshotField]] = None,
) -> VersionConflictError:
    """Build the 409 error describing the record's current (winning) state."""
    status = record.status.value if isinstance(record.status, EventStatus) else record.status
    return VersionConflictError(
        current_version=record.version,
        current_status=status,
        last_modified_by=record.last_modified_by,
        last_modified_at=record.last_modified_at.isoformat() if record.last_modified_at else None,
        snapshot=build_snapshot(record, snapshot_fields) if snapshot_fields is not None else None,
    )


def _fetch(db: Session, criteria: Sequence[Any]) -> Optional[EventRecord]:
    return db.execute(
        select(EventRecord).where(*criteria).execution_options(populate_existing=True)
    ).scalar_one_or_none()


def conditional_update(
    db: Session,
    criteria: Sequence[Any],
    values: dict[str, Any],
    *,
    expected_version: Optional[int] = None,
    expected_status: Optional[EventStatus | str] = None,
    modified_by: Optional[str] = None,
    snapshot_fields: Optional[Iterable[SnapshotField]] = None,
    increments: Optional[dict[str, int]] = None,
) -> EventRecord:
    """Atomically apply ``values`` to the single record matched by ``criteria``.

    ``criteria`` must identify one record (e.g. ``[EventRecord.event_id == x]``).
    ``expected_version=None`` skips the version predicate; the version is still
    bumped. ``increments`` adds to numeric columns in the same statement; the
    guard's own ``version + 1`` always wins over a caller-supplied version
    increment.

    Returns the post-update record. Raises ``NotFoundError`` when ``criteria``
    matches nothing and ``VersionConflictError`` when the record exists but its
    version or status moved on.
    """
    guarded = list(criteria)
    if expected_version is not None:
        guarded.append(EventRecord.version == expected_version)
    if expected_status is not None:
        guarded.append(EventRecord.status == EventStatus(expected_status))

    final_values = dict(values)
    for column, amount in (increments or {}).items():
        final_values[column] = getattr(EventRecord, column) + amount
    final_values["version"] = EventRecord.version + 1
    final_values["last_modified_at"] = datetime.now(timezone.utc)
    if modified_by:
        final_values["last_modified_by"] = modified_by

    stmt = (
        update(EventRecord)
        .where(*guarded)
        .values(**final_values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)

    if result.rowcount == 1:
        db.commit()
        updated = _fetch(db, criteria)
        logger.debug("Guarded update applied, event now at version %d", updated.version)
        return updated

    db.rollback()
    current = _fetch(db, criteria)
    if current is None:
        raise NotFoundError("Event", _describe(criteria))

    logger.warning(
        "Version conflict on event %s: expected version=%s status=%s, found version=%d status=%s",
        current.event_id, expected_version, _status_value(expected_status),
        current.version, _status_value(current.status),
    )
    raise conflict_from(current, snapshot_fields)


def _status_value(status) -> Optional[str]:
    if status is None:
        return None
    return status.value if isinstance(status, EventStatus) else str(status)


def _describe(criteria: Sequence[Any]) -> str:
    parts = []
    for criterion in criteria:
        right = getattr(criterion, "right", None)
        value = getattr(right, "value", None)
        parts.append(str(value) if value is not None else str(criterion))
    return ", ".join(parts)
