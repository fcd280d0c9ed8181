"""External sync gate.

Decides whether a committed change is mirrored to the external calendar,
performs the call and merges the response back with a second guarded write
scoped to ``external_sync``. The remote call runs after the primary write has
committed: whatever happens here, the local state change stands and the
caller only sees ``synced=False``.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from reservations.models.event import EventRecord
from reservations.services.calendar_client import CalendarClient
from reservations.services.change_detection import SYNCABLE_FIELDS, is_syncable_change
from reservations.services.concurrency import conditional_update
from reservations.services.exceptions import ServiceError

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    record: EventRecord
    attempted: bool = False
    synced: bool = False
    error: Optional[str] = None


def external_id(record: EventRecord) -> Optional[str]:
    return (record.external_sync or {}).get("external_id")


def has_sync_identity(record: EventRecord, delegated_token: Optional[str] = None) -> bool:
    """App-only auth needs a calendar owner; otherwise a delegated token must be supplied."""
    return bool(record.calendar_owner) or bool(delegated_token)


def should_sync(
    record: EventRecord,
    changed_fields: Iterable[str],
    delegated_token: Optional[str] = None,
) -> bool:
    return (
        external_id(record) is not None
        and is_syncable_change(changed_fields)
        and has_sync_identity(record, delegated_token)
    )


def _store_sync_metadata(
    db: Session,
    record: EventRecord,
    response: dict[str, Any],
    synced_fields: list[str],
) -> Optional[EventRecord]:
    """Merge the calendar response into ``external_sync``; ``None`` if it could not be stored."""
    previous = record.external_sync or {}
    metadata = {
        **previous,
        "external_id": response.get("id") or previous.get("external_id"),
        "external_correlation_id": response.get("iCalUId") or previous.get("external_correlation_id"),
        "change_key": response.get("changeKey"),
        "web_link": response.get("webLink"),
        "calendar_owner": record.calendar_owner,
        "calendar_id": record.calendar_id,
        "last_synced_fields": synced_fields,
        "last_synced_at": datetime.now(timezone.utc).isoformat(),
    }
    metadata.pop("removed_at", None)
    return _write_sync_metadata(db, record, metadata)


def _write_sync_metadata(db: Session, record: EventRecord, metadata: dict[str, Any]) -> Optional[EventRecord]:
    # Only external_sync is written, so the version is not pinned: a business
    # write landing after the primary commit must not drop the correlation id.
    try:
        return conditional_update(
            db,
            [EventRecord.event_id == record.event_id],
            {"external_sync": metadata},
        )
    except ServiceError:
        logger.warning(
            "Calendar call for event %s succeeded but sync metadata could not be stored",
            record.event_id, exc_info=True,
        )
        return None


def sync_update(
    db: Session,
    record: EventRecord,
    final_changes: dict[str, Any],
    client: Optional[CalendarClient],
    *,
    delegated_token: Optional[str] = None,
) -> SyncResult:
    """Push changed fields of an already-synced record."""
    if client is None or not should_sync(record, final_changes.keys(), delegated_token):
        logger.debug("Skipping calendar update for event %s", record.event_id)
        return SyncResult(record=record)

    fields = sorted(f for f in final_changes if f in SYNCABLE_FIELDS)
    payload = {f: (record.calendar_data or {}).get(f) for f in fields}
    try:
        response = client.update_event(
            record.calendar_owner, record.calendar_id, external_id(record), payload, token=delegated_token
        )
    except Exception as exc:
        logger.exception("Calendar update failed for event %s", record.event_id)
        return SyncResult(record=record, attempted=True, error=str(exc))

    updated = _store_sync_metadata(db, record, response or {}, fields)
    if updated is None:
        return SyncResult(record=record, attempted=True, error="sync metadata not stored")
    logger.info("Synced %d field(s) of event %s to calendar", len(fields), record.event_id)
    return SyncResult(record=updated, attempted=True, synced=True)


def sync_create(
    db: Session,
    record: EventRecord,
    client: Optional[CalendarClient],
    *,
    delegated_token: Optional[str] = None,
) -> SyncResult:
    """Create the remote event for a newly published (or republished) record."""
    if client is None or not has_sync_identity(record, delegated_token):
        logger.debug("Skipping calendar create for event %s", record.event_id)
        return SyncResult(record=record)

    data = dict(record.calendar_data or {})
    try:
        response = client.create_event(record.calendar_owner, record.calendar_id, data, token=delegated_token)
    except Exception as exc:
        logger.exception("Calendar create failed for event %s", record.event_id)
        return SyncResult(record=record, attempted=True, error=str(exc))

    updated = _store_sync_metadata(db, record, response or {}, sorted(f for f in data if f in SYNCABLE_FIELDS))
    if updated is None:
        return SyncResult(record=record, attempted=True, error="sync metadata not stored")
    logger.info("Created calendar event %s for event %s", external_id(updated), record.event_id)
    return SyncResult(record=updated, attempted=True, synced=True)


def sync_delete(
    db: Session,
    record: EventRecord,
    client: Optional[CalendarClient],
    *,
    delegated_token: Optional[str] = None,
) -> SyncResult:
    """Remove the remote event of a deleted record; the correlation data is kept for restore."""
    remote_id = external_id(record)
    if client is None or remote_id is None or not has_sync_identity(record, delegated_token):
        return SyncResult(record=record)

    try:
        client.delete_event(record.calendar_owner, record.calendar_id, remote_id, token=delegated_token)
    except Exception as exc:
        logger.exception("Calendar delete failed for event %s", record.event_id)
        return SyncResult(record=record, attempted=True, error=str(exc))

    metadata = {**record.external_sync, "removed_at": datetime.now(timezone.utc).isoformat()}
    updated = _write_sync_metadata(db, record, metadata)
    if updated is None:
        return SyncResult(record=record, attempted=True, error="sync metadata not stored")
    logger.info("Removed calendar event %s for deleted event %s", remote_id, record.event_id)
    return SyncResult(record=updated, attempted=True, synced=True)
