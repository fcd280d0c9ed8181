"""Pytest fixtures — file-backed SQLite database for fast, isolated tests."""
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from reservations.database import Base, get_db
from reservations.dependencies import get_calendar, get_notifier
from reservations.main import app
from reservations.services import event_service
from reservations.services.calendar_client import CalendarClientError
from reservations.services.permissions import Actor, RolePermissionOracle

# Import all models so they register with Base.metadata
from reservations.models.user import User                # noqa: F401
from reservations.models.event import EventRecord        # noqa: F401
from reservations.models.audit_entry import AuditEntry   # noqa: F401

SQLITE_URL = "sqlite:///./test.db"

CALENDAR_OWNER = "rooms@example.org"

DETAILS = {
    "event_title": "Board Meeting",
    "event_description": "Quarterly review",
    "start_date_time": "2026-03-01T10:00",
    "end_date_time": "2026-03-01T11:00",
    "locations": ["room-101"],
    "location_display_names": ["Room 101"],
    "categories": ["Meeting"],
}


class RecordingCalendarClient:
    """Calendar fake that records every call and answers like Graph would."""

    def __init__(self):
        self.calls = []
        self._next = 0

    def create_event(self, owner, calendar_id, data, *, token=None):
        self.calls.append(("create", owner, calendar_id, None, dict(data), token))
        self._next += 1
        return {
            "id": f"graph-{self._next}",
            "iCalUId": f"ical-{self._next}",
            "changeKey": "ck-1",
            "webLink": f"https://outlook.example/graph-{self._next}",
        }

    def update_event(self, owner, calendar_id, external_id, data, *, token=None):
        self.calls.append(("update", owner, calendar_id, external_id, dict(data), token))
        return {"id": external_id, "changeKey": "ck-2", "webLink": f"https://outlook.example/{external_id}"}

    def delete_event(self, owner, calendar_id, external_id, *, token=None):
        self.calls.append(("delete", owner, calendar_id, external_id, None, token))

    def actions(self):
        return [call[0] for call in self.calls]


class FailingCalendarClient:
    """Calendar fake whose every call fails."""

    def __init__(self):
        self.attempts = 0

    def _fail(self, *args, **kwargs):
        self.attempts += 1
        raise CalendarClientError("calendar unavailable")

    create_event = update_event = delete_event = _fail


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send_change_notification(self, recipient, event_title, diff):
        self.sent.append((recipient, event_title, list(diff)))


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def calendar():
    return RecordingCalendarClient()


@pytest.fixture
def failing_calendar():
    return FailingCalendarClient()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def permissions():
    return RolePermissionOracle()


@pytest.fixture
def requester():
    return Actor(user_id="user-requester", email="requester@example.org", role="requester")


@pytest.fixture
def other_requester():
    return Actor(user_id="user-other", email="other@example.org", role="requester")


@pytest.fixture
def approver():
    return Actor(user_id="user-approver", email="approver@example.org", role="approver")


@pytest.fixture
def admin():
    return Actor(user_id="user-admin", email="admin@example.org", role="admin")


@pytest.fixture
def details():
    return dict(DETAILS)


@pytest.fixture
def draft(db, requester, details):
    """A fresh draft owned by ``requester``, synced through ``CALENDAR_OWNER``."""
    return event_service.create_draft(db, requester, details, calendar_owner=CALENDAR_OWNER)


@pytest.fixture(scope="function")
def client(session_factory, calendar, notifier):
    """FastAPI TestClient with the database and collaborators overridden."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_calendar] = lambda: calendar
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(client):
    """Factory — POST /api/users and return the response JSON."""
    counter = {"n": 0}

    def _make(name: str = "Test User", role: str = "requester", email: str = None) -> dict:
        counter["n"] += 1
        resp = client.post("/api/users/", json={
            "display_name": name,
            "email": email or f"user{counter['n']}@example.org",
            "role": role,
        })
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _make


@pytest.fixture
def make_event(client):
    """Factory — create a draft through the API and return the response JSON."""

    def _make(owner: dict, details: dict = None, **extra) -> dict:
        payload = {"details": dict(details or DETAILS), "calendar_owner": CALENDAR_OWNER, **extra}
        resp = client.post("/api/events/", params={"actor_user_id": owner["user_id"]}, json=payload)
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _make
