"""
Custom exceptions for the service layer.

Each error carries the HTTP status and machine-readable code the API layer
translates it into, so callers never match on message strings.
"""

from typing import Any, Optional


class ServiceError(Exception):
    """Base exception for service layer errors."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(ServiceError):
    """Raised when a record (or the filter identifying it) matches nothing."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class VersionConflictError(ServiceError):
    """Raised when the stored version or status no longer matches what the caller saw."""

    status_code = 409
    code = "VERSION_CONFLICT"

    def __init__(
        self,
        current_version: int,
        current_status: Optional[str],
        last_modified_by: Optional[str] = None,
        last_modified_at: Optional[str] = None,
        snapshot: Optional[dict[str, Any]] = None,
    ):
        self.current_version = current_version
        self.current_status = current_status
        self.last_modified_by = last_modified_by
        self.last_modified_at = last_modified_at
        self.snapshot = snapshot
        details: dict[str, Any] = {
            "current_version": current_version,
            "current_status": current_status,
            "last_modified_by": last_modified_by,
            "last_modified_at": last_modified_at,
        }
        if snapshot is not None:
            details["snapshot"] = snapshot
        super().__init__(
            "This event was modified by another user. Please refresh and try again.",
            details,
        )


class InvalidTransitionError(ServiceError):
    """Raised when an action is not legal from the record's current status."""

    status_code = 400
    code = "INVALID_TRANSITION"

    def __init__(self, action: str, current_status: Optional[str], message: Optional[str] = None):
        self.action = action
        self.current_status = current_status
        super().__init__(
            message or f"Cannot {action} event with status: {current_status}",
            {"action": action, "current_status": current_status},
        )


class ValidationError(ServiceError):
    """Raised when required input is missing or malformed."""

    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, {"field": field} if field else None)


class PermissionDeniedError(ServiceError):
    """Raised when the permission oracle refuses a capability or ownership check."""

    status_code = 403
    code = "PERMISSION_DENIED"

    def __init__(self, message: str):
        super().__init__(message)
