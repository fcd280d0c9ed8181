"""Permission oracle consumed by the lifecycle as yes/no decisions."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from reservations.models.event import EventRecord

SUBMIT = "submit"
APPROVE = "approve"
APPROVE_OWN = "approve_own"
REJECT = "reject"
DELETE = "delete"
RESTORE = "restore"
EDIT_ANY = "edit_any"
VIEW_AUDIT = "view_audit"

_REVIEWER = frozenset({SUBMIT, APPROVE, REJECT, DELETE, EDIT_ANY, VIEW_AUDIT})

ROLE_CAPABILITIES: dict[str, frozenset[str]] = {
    "viewer": frozenset(),
    "requester": frozenset({SUBMIT}),
    "approver": _REVIEWER,
    "admin": _REVIEWER | {RESTORE, APPROVE_OWN},
}


@dataclass(frozen=True, slots=True)
class Actor:
    user_id: str
    email: str
    role: str = "requester"


class PermissionOracle(Protocol):
    def has_capability(self, actor: Actor, capability: str) -> bool: ...

    def owns(self, actor: Actor, record: EventRecord) -> bool: ...


class RolePermissionOracle:
    """Default oracle: capabilities come from the actor's role."""

    def __init__(self, role_capabilities: dict[str, frozenset[str]] | None = None):
        self.role_capabilities = role_capabilities or ROLE_CAPABILITIES

    def has_capability(self, actor: Actor, capability: str) -> bool:
        return capability in self.role_capabilities.get(actor.role, frozenset())

    def owns(self, actor: Actor, record: EventRecord) -> bool:
        if record.created_by == actor.user_id:
            return True
        email = (record.requester_email or "").strip().lower()
        return bool(email) and email == actor.email.strip().lower()
