"""Edit-request merge engine and key-field change detection.

The merge is a shallow, key-by-key overlay over the closed payload field set
(see ``reservations.schemas.event.EventDetails``): approver overrides win over
requester proposals, and approvers may add fields the requester never touched.
Only key fields produce a notification diff; every field is still persisted.
"""
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional

KEY_FIELDS: dict[str, str] = {
    "event_title": "Event Title",
    "start_date_time": "Start Date/Time",
    "end_date_time": "End Date/Time",
    "location_display_names": "Location(s)",
    "locations": "Room(s)",
}

SYNCABLE_FIELDS = frozenset({
    "event_title",
    "event_description",
    "start_date_time",
    "end_date_time",
    "location_display_names",
    "categories",
    "offsite_name",
    "offsite_address",
})

_DATETIME_NO_SECONDS = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}$")
_DATETIME_WITH_SECONDS = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}$")


@dataclass(frozen=True)
class FieldChange:
    field: str
    display_name: str
    from_value: Any
    to_value: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "display_name": self.display_name,
            "from": self.from_value,
            "to": self.to_value,
        }


def _normalize_empty(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    if isinstance(value, (list, tuple)) and len(value) == 0:
        return None
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def values_differ(old: Any, new: Any) -> bool:
    """Compare two payload values the way a human reviewer would."""
    a, b = _normalize_empty(old), _normalize_empty(new)
    if a is None and b is None:
        return False
    if a is None or b is None:
        return True

    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return True
        return sorted(map(str, a)) != sorted(map(str, b))

    if _is_number(a) or _is_number(b):
        try:
            return float(a) != float(b)
        except (TypeError, ValueError):
            return True

    if isinstance(a, str) and isinstance(b, str):
        a_is_dt = bool(_DATETIME_NO_SECONDS.match(a) or _DATETIME_WITH_SECONDS.match(a))
        b_is_dt = bool(_DATETIME_NO_SECONDS.match(b) or _DATETIME_WITH_SECONDS.match(b))
        if a_is_dt and b_is_dt:
            def pad(s):
                return s + ":00" if _DATETIME_NO_SECONDS.match(s) else s
            return pad(a) != pad(b)

    return str(a) != str(b)


def merge_edit_request(
    original: dict[str, Any],
    proposed_changes: dict[str, Any],
    approver_overrides: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Overlay approver overrides on the requester's proposal.

    ``original`` is the record's current payload; it is not part of the
    result, only the fields that will be written are.
    """
    final_changes = dict(proposed_changes or {})
    final_changes.update(approver_overrides or {})
    return final_changes


def changed_fields(original: dict[str, Any], changes: dict[str, Any]) -> list[str]:
    """Fields in ``changes`` whose value actually differs from ``original``."""
    return [field for field, value in changes.items() if values_differ(original.get(field), value)]


def key_field_diff(
    original: dict[str, Any],
    final_changes: dict[str, Any],
    fields: Iterable[str] = KEY_FIELDS,
) -> list[FieldChange]:
    diff = []
    for field in fields:
        if field not in final_changes:
            continue
        old, new = original.get(field), final_changes[field]
        if values_differ(old, new):
            diff.append(FieldChange(
                field=field,
                display_name=KEY_FIELDS.get(field, field),
                from_value=old,
                to_value=new,
            ))
    return diff


def is_syncable_change(fields: Iterable[str]) -> bool:
    return any(field in SYNCABLE_FIELDS for field in fields)
