"""Request-scoped collaborators for the API layer."""
from typing import Optional

from fastapi import Depends, Header, Query
from sqlalchemy.orm import Session

from reservations.database import get_db
from reservations.models.user import User
from reservations.services import calendar_client
from reservations.services.calendar_client import CalendarClient
from reservations.services.exceptions import NotFoundError
from reservations.services.notifications import LoggingNotificationDispatcher, NotificationDispatcher
from reservations.services.permissions import Actor, PermissionOracle, RolePermissionOracle


def get_actor(
    actor_user_id: str = Query(..., description="ID of the user performing the action"),
    db: Session = Depends(get_db),
) -> Actor:
    user = db.query(User).filter(User.user_id == actor_user_id).first()
    if not user:
        raise NotFoundError("User", actor_user_id)
    return Actor(user_id=user.user_id, email=user.email, role=user.role)


def get_permissions() -> PermissionOracle:
    return RolePermissionOracle()


def get_calendar() -> Optional[CalendarClient]:
    return calendar_client.get_calendar_client()


def get_notifier() -> NotificationDispatcher:
    return LoggingNotificationDispatcher()


def get_delegated_token(x_calendar_token: Optional[str] = Header(None)) -> Optional[str]:
    """Delegated calendar token forwarded by the client, if any."""
    return x_calendar_token or None
