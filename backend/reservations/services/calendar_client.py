"""External calendar collaborator.

Only the call contract matters to the workflow: create, update and delete an
event on a calendar, raising ``CalendarClientError`` on any failure.
``GraphCalendarClient`` talks to Microsoft Graph over httpx with a bounded
timeout; ``get_calendar_client`` returns ``None`` when syncing is disabled.
"""
import logging
from typing import Any, Optional, Protocol

import httpx

from reservations.config import settings

logger = logging.getLogger(__name__)


class CalendarClientError(Exception):
    """Raised when the external calendar rejects or fails a call."""


class CalendarClient(Protocol):
    def create_event(
        self, owner: Optional[str], calendar_id: Optional[str], data: dict[str, Any], *, token: Optional[str] = None
    ) -> dict[str, Any]: ...

    def update_event(
        self,
        owner: Optional[str],
        calendar_id: Optional[str],
        external_id: str,
        data: dict[str, Any],
        *,
        token: Optional[str] = None,
    ) -> dict[str, Any]: ...

    def delete_event(
        self, owner: Optional[str], calendar_id: Optional[str], external_id: str, *, token: Optional[str] = None
    ) -> None: ...


def to_graph_event(details: dict[str, Any]) -> dict[str, Any]:
    """Map payload fields onto a Graph event body, skipping fields that are not set."""
    body: dict[str, Any] = {}
    if "event_title" in details:
        body["subject"] = details["event_title"]
    if "event_description" in details:
        body["body"] = {"contentType": "text", "content": details.get("event_description") or ""}
    if details.get("start_date_time"):
        body["start"] = {"dateTime": details["start_date_time"], "timeZone": "UTC"}
    if details.get("end_date_time"):
        body["end"] = {"dateTime": details["end_date_time"], "timeZone": "UTC"}
    if "location_display_names" in details or "offsite_name" in details:
        names = details.get("location_display_names") or []
        if details.get("offsite_name"):
            names = [details["offsite_name"], *names]
        body["location"] = {"displayName": "; ".join(names)}
        if details.get("offsite_address"):
            body["location"]["address"] = {"street": details["offsite_address"]}
    if "categories" in details:
        body["categories"] = details.get("categories") or []
    return body


class GraphCalendarClient:
    """Microsoft Graph calendar client (app-only token, or a delegated one per call)."""

    def __init__(self, base_url: str, access_token: str = "", timeout: float = 15.0):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout

    def _events_url(self, owner: Optional[str], calendar_id: Optional[str]) -> str:
        # No owner means a delegated token acting as the signed-in user.
        root = f"{self.base_url}/users/{owner}" if owner else f"{self.base_url}/me"
        if calendar_id:
            return f"{root}/calendars/{calendar_id}/events"
        return f"{root}/events"

    def _request(self, method: str, url: str, token: Optional[str], json: Optional[dict] = None) -> httpx.Response:
        bearer = token or self.access_token
        headers = {"Authorization": f"Bearer {bearer}"} if bearer else {}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.request(method, url, headers=headers, json=json)
                response.raise_for_status()
                return response
        except httpx.HTTPError as exc:
            raise CalendarClientError(f"Graph {method} {url} failed: {exc}") from exc

    def create_event(self, owner, calendar_id, data, *, token=None):
        response = self._request("POST", self._events_url(owner, calendar_id), token, json=to_graph_event(data))
        return response.json()

    def update_event(self, owner, calendar_id, external_id, data, *, token=None):
        url = f"{self._events_url(owner, calendar_id)}/{external_id}"
        response = self._request("PATCH", url, token, json=to_graph_event(data))
        return response.json()

    def delete_event(self, owner, calendar_id, external_id, *, token=None):
        url = f"{self._events_url(owner, calendar_id)}/{external_id}"
        self._request("DELETE", url, token)


def get_calendar_client() -> Optional[CalendarClient]:
    provider = settings.CALENDAR_PROVIDER.strip().lower()

    if provider in ("", "disabled", "none"):
        return None

    if provider == "graph":
        return GraphCalendarClient(
            settings.GRAPH_BASE_URL,
            access_token=settings.GRAPH_ACCESS_TOKEN,
            timeout=settings.GRAPH_TIMEOUT_SECONDS,
        )

    raise ValueError(f"Unknown CALENDAR_PROVIDER={provider!r}. Expected disabled or graph.")
