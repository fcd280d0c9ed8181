"""Change-notification dispatcher used after key fields of a record change."""
import logging
from typing import Protocol, Sequence

from reservations.services.change_detection import FieldChange

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    def send_change_notification(self, recipient: str, event_title: str, diff: Sequence[FieldChange]) -> None: ...


class LoggingNotificationDispatcher:
    """Default dispatcher: records the notification in the application log."""

    def send_change_notification(self, recipient: str, event_title: str, diff: Sequence[FieldChange]) -> None:
        summary = ", ".join(f"{c.display_name}: {c.from_value!r} -> {c.to_value!r}" for c in diff)
        logger.info("Change notification to %s for '%s': %s", recipient, event_title, summary)
