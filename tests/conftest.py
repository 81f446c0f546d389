"""
CLINICDESK — Test Infrastructure (conftest.py)
===============================================
Provides:
  - Per-test sqlite database (reminders + config tables)
  - Fake clock, recording notifiers and an in-memory reminder store
  - ReminderScheduler wired to the fakes
  - FastAPI TestClient
"""

import os
import sys
import datetime
import pytest

# Ensure project root is on path
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT_DIR)

# Import-time schema setup in main.py must not touch a real clinic.db
os.environ.setdefault("CLINIC_DB_PATH", os.path.join(ROOT_DIR, "clinic_test.db"))

from clinicdesk.reminders import models
from clinicdesk.reminders.config import ReminderConfig
from clinicdesk.reminders.models import Reminder, ReminderFetchError, ReminderStore
from clinicdesk.reminders.notifiers.base import InAppAlertSink, NotificationCapability, Permission


# ============================================================================
# Fakes
# ============================================================================

class FakeClock:
    """Injectable wall clock."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + datetime.timedelta(**kwargs)
        return self.now


class RecordingNotifier(NotificationCapability):
    """Desktop capability that records shows instead of displaying them."""

    channel_name = "desktop"

    def __init__(self, permission=Permission.GRANTED, grant_on_request=Permission.GRANTED):
        self._permission = permission
        self.grant_on_request = grant_on_request
        self.shown = []
        self.requests = 0
        self.fail_with = None

    def permission(self):
        return self._permission

    def request(self):
        self.requests += 1
        self._permission = self.grant_on_request
        return self._permission

    def show(self, title, body, tag):
        if self.fail_with is not None:
            raise self.fail_with
        self.shown.append({"title": title, "body": body, "tag": tag})


class RecordingAlertSink(InAppAlertSink):
    """In-app sink that records alerts."""

    def __init__(self):
        self.alerts = []
        self.fail_with = None

    def show_in_app_alert(self, title, body, **extra):
        if self.fail_with is not None:
            raise self.fail_with
        self.alerts.append({"title": title, "body": body, **extra})


class ListStore(ReminderStore):
    """In-memory reminder store; set ``error`` to simulate an outage."""

    def __init__(self, reminders=None):
        self.reminders = list(reminders or [])
        self.error = None
        self.fetches = 0

    def fetch_active_reminders(self):
        self.fetches += 1
        if self.error is not None:
            raise self.error
        return list(self.reminders)


def make_reminder(reminder_id="r1", at="2024-01-01T09:00:00", recurrence=None,
                  message="Check autoclave log", is_active=True):
    if isinstance(at, str):
        at = datetime.datetime.fromisoformat(at)
    return Reminder(
        id=reminder_id,
        message=message,
        reminder_datetime=at,
        is_active=is_active,
        recurrence_config=recurrence,
    )


def daily(interval=1, times_per_day=1):
    return {"type": "daily", "interval": interval, "times_per_day": times_per_day}


def dt(text):
    return datetime.datetime.fromisoformat(text)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Point the reminder module at a fresh database for every test."""
    db_path = str(tmp_path / "clinic_test.db")
    monkeypatch.setattr(models, "DB_PATH", db_path)
    ReminderConfig.reset_cache()
    models.init_reminder_schema()
    yield db_path
    ReminderConfig.reset_cache()


@pytest.fixture
def clock():
    return FakeClock(dt("2024-01-05T09:00:05"))


@pytest.fixture
def desktop():
    return RecordingNotifier()


@pytest.fixture
def in_app():
    return RecordingAlertSink()


@pytest.fixture
def store():
    return ListStore()


@pytest.fixture
def scheduler(store, desktop, in_app, clock):
    """ReminderScheduler on fakes; never started, cycles are run by hand."""
    from clinicdesk.reminders.scheduler_jobs import ReminderScheduler
    sched = ReminderScheduler(
        store, desktop, in_app,
        clock=clock,
        check_interval_seconds=60,
        retention_hours=24,
        dwell_seconds=60,
        user="dr.lee",
    )
    yield sched
    sched.stop()


@pytest.fixture
def app():
    import main
    return main.app


@pytest.fixture
def client(app):
    """FastAPI TestClient with desktop notifications disabled."""
    from starlette.testclient import TestClient
    from clinicdesk.reminders.config import set_config
    from clinicdesk.reminders.notifiers import get_alert_hub
    from clinicdesk.reminders.scheduler_jobs import stop_all_session_schedulers

    set_config("desktop_enabled", False)
    get_alert_hub().clear()
    with TestClient(app) as c:
        yield c
    stop_all_session_schedulers()
    get_alert_hub().clear()


# ============================================================================
# DB helpers
# ============================================================================

def db_query(sql, params=()):
    """Run a query against the test DB and return list of dicts."""
    conn = models._get_conn()
    rows = conn.execute(sql, params).fetchall()
    result = [dict(r) for r in rows]
    conn.close()
    return result
