"""
CLINICDESK Reminders — Notification Dispatcher

Delivers a due occurrence through the desktop and in-app channels and flags
the reminder as recently active for the UI.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, List, Set

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler

from .models import OccurrenceKey, Reminder
from .notifiers.base import InAppAlertSink, NotificationCapability, Permission

logger = logging.getLogger(__name__)

DWELL_JOB_ID = "reminder_active_dwell"


class ActiveMarkers:
    """
    Reminder IDs currently flagged for UI emphasis.

    Every flag restarts one shared dwell timer; when it elapses the whole set
    is cleared at once. The timer is an APScheduler one-shot job that is
    cancelled (if pending) and then rescheduled. Each arm gets a generation
    number so an expiry that was already running when a new flag arrived
    cannot clear the fresh set.
    """

    def __init__(self, scheduler: BaseScheduler, dwell_seconds: int = 60):
        self._scheduler = scheduler
        self._dwell = timedelta(seconds=dwell_seconds)
        self._ids: Set[str] = set()
        self._generation = 0
        self._lock = threading.Lock()

    def flag(self, reminder_id: str) -> None:
        with self._lock:
            self._ids.add(reminder_id)
            self._generation += 1
            self._cancel_pending()
            run_date = datetime.now(self._scheduler.timezone) + self._dwell
            self._scheduler.add_job(
                self._expire,
                "date",
                run_date=run_date,
                args=[self._generation],
                id=DWELL_JOB_ID,
                replace_existing=True,
            )

    def _expire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._ids.clear()
        logger.debug("[Reminders] Active reminder highlight expired")

    def clear(self) -> None:
        with self._lock:
            self._ids.clear()

    def cancel(self) -> None:
        """Drop the pending dwell timer (session teardown)."""
        with self._lock:
            self._generation += 1
            self._cancel_pending()

    def _cancel_pending(self) -> None:
        try:
            self._scheduler.remove_job(DWELL_JOB_ID)
        except JobLookupError:
            pass

    def snapshot(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._ids)

    def __contains__(self, reminder_id: str) -> bool:
        with self._lock:
            return reminder_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)


@dataclass
class DispatchReport:
    """Per-channel outcome of one dispatch."""
    key: OccurrenceKey
    delivered: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


class NotificationDispatcher:
    """Fans one due occurrence out to the notification channels."""

    def __init__(
        self,
        desktop: NotificationCapability,
        in_app: InAppAlertSink,
        markers: ActiveMarkers,
        desktop_title: str = "Dental Care Reminder",
        in_app_title: str = "Reminder Due",
    ):
        self.desktop = desktop
        self.in_app = in_app
        self.markers = markers
        self.desktop_title = desktop_title
        self.in_app_title = in_app_title

    def dispatch(self, reminder: Reminder, instant: datetime) -> DispatchReport:
        key = OccurrenceKey(reminder.id, instant)
        report = DispatchReport(key=key)

        self._send_desktop(reminder, key, report)
        self._send_in_app(reminder, key, report)
        self.markers.flag(reminder.id)

        if report.errors:
            logger.warning(f"[Reminders] Dispatch of {key} partially failed: {report.errors}")
        else:
            logger.info(f"[Reminders] Dispatched {key} via {', '.join(report.delivered)}")
        return report

    def _send_desktop(self, reminder: Reminder, key: OccurrenceKey, report: DispatchReport):
        channel = self.desktop.channel_name
        try:
            if self.desktop.permission() is not Permission.GRANTED:
                report.skipped.append(channel)
                return
            self.desktop.show(self.desktop_title, reminder.message, str(key))
            report.delivered.append(channel)
        except Exception as e:
            logger.error(f"[Reminders] Desktop notification failed for {key}: {e}", exc_info=True)
            report.errors[channel] = str(e)

    def _send_in_app(self, reminder: Reminder, key: OccurrenceKey, report: DispatchReport):
        channel = self.in_app.channel_name
        try:
            self.in_app.show_in_app_alert(
                self.in_app_title,
                reminder.message,
                reminder_id=reminder.id,
                occurrence_key=str(key),
                occurrence_at=key.instant.isoformat(),
            )
            report.delivered.append(channel)
        except Exception as e:
            logger.error(f"[Reminders] In-app alert failed for {key}: {e}", exc_info=True)
            report.errors[channel] = str(e)
