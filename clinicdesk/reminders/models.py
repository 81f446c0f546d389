"""
CLINICDESK Reminders — Data Model & Read Store

Reminder definitions are owned by the clinic backend; this module only reads
them. Recurrence configs arrive either as JSON objects or as JSON text.
"""
import os
import re
import json
import sqlite3
import datetime
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

logger = logging.getLogger(__name__)

DB_PATH = os.environ.get("CLINIC_DB_PATH", "clinic.db")


def _get_conn():
    conn = sqlite3.connect(DB_PATH, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def _ts() -> str:
    return datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")


# ============================================================================
# Errors
# ============================================================================

class ReminderError(Exception):
    """Base class for reminder scheduler errors."""


class ReminderFetchError(ReminderError):
    """The reminder store could not be read."""


class MalformedRecurrenceConfig(ReminderError, ValueError):
    """Unknown recurrence type or non-positive interval / times_per_day."""


class DispatchError(ReminderError):
    """A notification channel failed to deliver."""

    def __init__(self, channel: str, reference: str, cause: Exception):
        self.channel = channel
        self.reference = reference
        self.cause = cause
        super().__init__(f"{channel} delivery failed for {reference}: {cause}")


# ============================================================================
# Recurrence
# ============================================================================

class RecurrenceType(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


def _positive_int(raw: Dict, name: str) -> int:
    value = raw.get(name)
    if value is None:
        return 1
    if isinstance(value, bool):
        raise MalformedRecurrenceConfig(f"{name} must be an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise MalformedRecurrenceConfig(f"{name} must be an integer, got {value!r}")
    if isinstance(value, float) and number != value:
        raise MalformedRecurrenceConfig(f"{name} must be a whole number, got {value!r}")
    if number < 1:
        raise MalformedRecurrenceConfig(f"{name} must be >= 1, got {number}")
    return number


@dataclass
class RecurrenceConfig:
    """How a reminder repeats. Only NONE and DAILY produce occurrences."""
    type: RecurrenceType = RecurrenceType.NONE
    interval: int = 1
    times_per_day: int = 1
    days: List[int] = field(default_factory=list)  # weekly only, 0=Sun

    @classmethod
    def from_raw(cls, raw: Any) -> "RecurrenceConfig":
        """Parse a stored recurrence_config (None, dict or JSON text)."""
        if isinstance(raw, RecurrenceConfig):
            return raw
        if raw is None or raw == "":
            return cls()
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                raise MalformedRecurrenceConfig(f"recurrence_config is not valid JSON: {e}") from e
            if raw is None:
                return cls()
        if not isinstance(raw, dict):
            raise MalformedRecurrenceConfig(f"recurrence_config must be an object, got {type(raw).__name__}")

        type_value = raw.get("type") or RecurrenceType.NONE.value
        try:
            rtype = RecurrenceType(str(type_value).strip().lower())
        except ValueError:
            raise MalformedRecurrenceConfig(f"unknown recurrence type {type_value!r}")

        if rtype is RecurrenceType.NONE:
            return cls()

        return cls(
            type=rtype,
            interval=_positive_int(raw, "interval"),
            times_per_day=_positive_int(raw, "times_per_day"),
            days=list(raw.get("days") or []),
        )


# ============================================================================
# Reminder
# ============================================================================

# fromisoformat before 3.11 only takes 3 or 6 fractional digits
_FRACTION_RE = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")


def parse_datetime(value: Any, tz: Optional[datetime.tzinfo] = None) -> datetime.datetime:
    """Parse an ISO timestamp into a naive local datetime.

    Aware values are converted to ``tz`` (or the host zone when ``tz`` is
    None) before the offset is dropped, so all scheduler arithmetic runs on
    one naive wall clock.
    """
    if isinstance(value, datetime.datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        text = _FRACTION_RE.sub(
            lambda m: f"{m.group(1)}.{m.group(2)[:6].ljust(6, '0')}", text, count=1
        )
        dt = datetime.datetime.fromisoformat(text)
    else:
        raise TypeError(f"expected datetime or ISO string, got {type(value).__name__}")

    if dt.tzinfo is not None:
        dt = dt.astimezone(tz).replace(tzinfo=None)
    return dt


@dataclass
class Reminder:
    """A reminder definition as read from the clinic backend."""
    id: str
    message: str
    reminder_datetime: datetime.datetime
    is_active: bool = True
    recurrence_config: Any = None
    user_id: Optional[str] = None
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    @classmethod
    def from_row(cls, row: Dict, tz: Optional[datetime.tzinfo] = None) -> "Reminder":
        created = row.get("created_at")
        updated = row.get("updated_at")
        return cls(
            id=str(row["id"]),
            message=row.get("message") or "",
            reminder_datetime=parse_datetime(row["reminder_datetime"], tz),
            is_active=bool(row.get("is_active", True)),
            recurrence_config=row.get("recurrence_config"),
            user_id=row.get("user_id"),
            created_at=parse_datetime(created, tz) if created else None,
            updated_at=parse_datetime(updated, tz) if updated else None,
        )

    def recurrence(self) -> RecurrenceConfig:
        return RecurrenceConfig.from_raw(self.recurrence_config)


class OccurrenceKey(NamedTuple):
    """Identity of one fireable occurrence: (reminder id, instant)."""
    reminder_id: str
    instant: datetime.datetime

    def __str__(self) -> str:
        return f"{self.reminder_id}-{self.instant.isoformat()}"


# ============================================================================
# Read store
# ============================================================================

class ReminderStore(ABC):
    """Read interface the scheduler pulls reminders through."""

    @abstractmethod
    def fetch_active_reminders(self) -> List[Reminder]:
        """Return the current reminder set. Raises ReminderFetchError."""
        pass


class SqliteReminderStore(ReminderStore):
    """Reads the ``reminders`` table of the clinic database."""

    def __init__(self, user_id: Optional[str] = None, tz: Optional[datetime.tzinfo] = None):
        self.user_id = user_id
        self.tz = tz

    def fetch_active_reminders(self) -> List[Reminder]:
        sql = "SELECT * FROM reminders WHERE is_active = 1"
        params: List[Any] = []
        if self.user_id is not None:
            sql += " AND user_id = ?"
            params.append(self.user_id)
        sql += " ORDER BY reminder_datetime ASC"

        try:
            conn = _get_conn()
            try:
                rows = conn.execute(sql, params).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise ReminderFetchError(f"Failed to fetch reminders: {e}") from e

        reminders = []
        for row in rows:
            try:
                reminders.append(Reminder.from_row(dict(row), tz=self.tz))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"[Reminders] Skipping unreadable reminder row {row['id']}: {e}")
        return reminders


def init_reminder_schema():
    """Create the reminders table if it doesn't exist."""
    conn = _get_conn()
    conn.execute("""
        CREATE TABLE IF NOT EXISTS reminders (
            id TEXT PRIMARY KEY,
            user_id TEXT,
            message TEXT NOT NULL,
            reminder_datetime TEXT NOT NULL,
            recurrence_config TEXT,
            is_active INTEGER DEFAULT 1,
            created_at TEXT,
            updated_at TEXT
        )
    """)
    conn.commit()
    conn.close()


def insert_reminder(
    message: str,
    reminder_datetime: datetime.datetime,
    recurrence_config: Optional[Dict] = None,
    is_active: bool = True,
    user_id: Optional[str] = None,
    reminder_id: Optional[str] = None,
) -> str:
    """Seed a reminder row. Reminder editing lives in the clinic backend."""
    reminder_id = reminder_id or uuid.uuid4().hex
    ts = _ts()
    conn = _get_conn()
    conn.execute("""
        INSERT INTO reminders (id, user_id, message, reminder_datetime, recurrence_config,
                               is_active, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
    """, (
        reminder_id,
        user_id,
        message,
        reminder_datetime.isoformat(),
        json.dumps(recurrence_config) if recurrence_config is not None else None,
        1 if is_active else 0,
        ts,
        ts,
    ))
    conn.commit()
    conn.close()
    return reminder_id
