"""
Shared pytest fixtures: fake HTTP responses, a mock booking client, and
in-memory collaborators for the discovery loop.
"""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from slot_notifier.api.base import BookingClient
from slot_notifier.notifier import NotifierOptions


def _make_response(status_code, body=None, text=None):
    response = MagicMock()
    response.status_code = status_code
    if body is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = body
    if text is None:
        text = json.dumps(body) if body is not None else ""
    response.text = text
    return response


@pytest.fixture
def make_response():
    """Factory for fake requests.Response objects."""
    return _make_response


@pytest.fixture
def login_response():
    return _make_response(201, {
        "success": True,
        "data": {"id": 7, "user_token": "user-token", "name": "Tester"},
    })


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class MemoryStore:
    """In-memory dedup store with the same semantics as the SQLite one."""

    def __init__(self):
        self.keys = {}
        self.prune_calls = []

    def is_seen(self, slot_key):
        return slot_key in self.keys

    def mark_seen(self, slot_key):
        self.keys.setdefault(slot_key, datetime.now(timezone.utc))

    def prune(self, older_than):
        self.prune_calls.append(older_than)
        cutoff = datetime.now(timezone.utc) - older_than
        stale = [k for k, created in self.keys.items() if created < cutoff]
        for key in stale:
            del self.keys[key]
        return len(stale)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def store():
    """Mock dedup store that reports every slot as new."""
    mock = MagicMock(spec=["is_seen", "mark_seen", "prune"])
    mock.is_seen.return_value = False
    mock.prune.return_value = 0
    return mock


@pytest.fixture
def sink():
    """Mock notification sink with two subscribers."""
    mock = MagicMock(spec=["list_subscribers", "send"])
    mock.list_subscribers.return_value = [111, 222]
    return mock


@pytest.fixture
def client():
    """Booking client returning one staff member, one date and one timeslot."""
    mock = MagicMock(spec=BookingClient)
    mock.list_bookable_staff.return_value = [42]
    mock.list_bookable_dates.return_value = ["2025-06-01"]
    mock.list_bookable_timeslots.return_value = ["2025-06-01T10:00:00+03:00"]
    return mock


@pytest.fixture
def options():
    return NotifierOptions(location_id=780413, service_ids=[100], timezone="Europe/Moscow", interval=30)


@pytest.fixture
def fixed_now():
    """2025-06-01 09:00 Moscow time."""
    return lambda: datetime(2025, 6, 1, 6, 0, tzinfo=timezone.utc)


SETTINGS_ENV_VARS = [
    "YCLIENTS_LOGIN", "YCLIENTS_PASSWORD", "YCLIENTS_PARTNER_TOKEN", "YCLIENTS_COMPANY_ID",
    "YCLIENTS_FORM_ID", "YCLIENTS_SERVICE_IDS", "TELEGRAM_TOKEN", "TIMEZONE",
    "CHECK_INTERVAL_SECONDS", "DATABASE_URL", "METRICS_PORT",
]


@pytest.fixture(autouse=True)
def clean_settings_env(monkeypatch, tmp_path):
    """Keep the host environment and any .env file out of settings."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
