"""
CLINICDESK Reminders — Scheduler Jobs

One ReminderScheduler per logged-in user, each with its own APScheduler
BackgroundScheduler. The evaluation job runs with max_instances=1 and
coalesce=True, so ticks never overlap; a slow tick only delays the next one.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from .config import get_config, get_local_now, get_timezone
from .dispatcher import ActiveMarkers, NotificationDispatcher
from .ledger import DedupLedger
from .models import OccurrenceKey, ReminderFetchError, ReminderStore, SqliteReminderStore
from .notifiers import DesktopNotifier, NullNotifier, get_alert_hub
from .notifiers.base import InAppAlertSink, NotificationCapability, Permission
from .occurrences import compute_due_occurrences, is_within_due_window

logger = logging.getLogger(__name__)

EVALUATION_JOB_ID = "reminder_evaluation"
PERMISSION_JOB_ID = "reminder_permission_request"


@dataclass
class CycleResult:
    """What one evaluation cycle did."""
    checked_at: datetime
    evaluated: int = 0
    dispatched: List[OccurrenceKey] = field(default_factory=list)
    failed: List[OccurrenceKey] = field(default_factory=list)
    evicted: int = 0
    skipped: bool = False


class ReminderScheduler:
    """
    Drives reminder evaluation for one user session.

    Owns the dedup ledger and the active-marker set; collaborators only see
    the store it reads from and the channels it notifies through.
    """

    def __init__(
        self,
        store: ReminderStore,
        desktop: NotificationCapability,
        in_app: InAppAlertSink,
        clock: Optional[Callable[[], datetime]] = None,
        check_interval_seconds: Optional[int] = None,
        retention_hours: Optional[int] = None,
        dwell_seconds: Optional[int] = None,
        user: Optional[str] = None,
    ):
        self.store = store
        self.desktop = desktop
        self.user = user
        self._clock = clock or get_local_now

        self.check_interval = timedelta(
            seconds=check_interval_seconds or get_config("check_interval_seconds", 60)
        )
        self.retention = timedelta(hours=retention_hours or get_config("retention_hours", 24))

        scheduler_kwargs = {}
        tz = get_timezone()
        if tz is not None:
            scheduler_kwargs["timezone"] = tz
        self._scheduler = BackgroundScheduler(
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 120},
            **scheduler_kwargs,
        )

        self._ledger = DedupLedger()
        self._markers = ActiveMarkers(
            self._scheduler,
            dwell_seconds=dwell_seconds or get_config("dwell_seconds", 60),
        )
        self._dispatcher = NotificationDispatcher(
            desktop,
            in_app,
            self._markers,
            desktop_title=get_config("desktop_title", "Dental Care Reminder"),
            in_app_title=get_config("in_app_title", "Reminder Due"),
        )

        self._stopped = False
        self._last_check_at: Optional[datetime] = None
        self._last_result: Optional[CycleResult] = None

    # ------------------------------------------------------------------
    # Permission bootstrap
    # ------------------------------------------------------------------

    def bootstrap_permission(self) -> Permission:
        """Read the desktop permission; queue a request if undecided."""
        try:
            current = self.desktop.permission()
        except Exception as e:
            logger.error(f"[Reminders] Could not read notification permission: {e}")
            return Permission.DENIED

        if current is Permission.UNDETERMINED:
            # No trigger: runs once, as soon as the scheduler is up
            self._scheduler.add_job(
                self._request_permission,
                id=PERMISSION_JOB_ID,
                replace_existing=True,
            )
        return current

    def _request_permission(self):
        try:
            decided = self.desktop.request()
            logger.info(f"[Reminders] Notification permission is now {decided.value}")
        except Exception as e:
            logger.error(f"[Reminders] Notification permission request failed: {e}")

    # ------------------------------------------------------------------
    # Evaluation cycle
    # ------------------------------------------------------------------

    def run_cycle(self, now: Optional[datetime] = None) -> CycleResult:
        """Evaluate every reminder once and fire the due occurrences."""
        now = now or self._clock()
        result = CycleResult(checked_at=now)

        if self._stopped:
            result.skipped = True
            return result

        self._last_check_at = now

        try:
            reminders = self.store.fetch_active_reminders()
        except ReminderFetchError as e:
            logger.error(f"[Reminders] {e}; skipping this cycle")
            result.skipped = True
            return result
        except Exception as e:
            logger.error(f"[Reminders] Reminder fetch failed, skipping this cycle: {e}", exc_info=True)
            result.skipped = True
            return result

        for reminder in reminders:
            if not reminder.is_active:
                continue
            result.evaluated += 1

            try:
                instants = compute_due_occurrences(reminder, now, window=self.check_interval)
            except Exception as e:
                logger.error(f"[Reminders] Could not evaluate reminder {reminder.id}: {e}", exc_info=True)
                continue

            for instant in instants:
                key = OccurrenceKey(reminder.id, instant)
                if not is_within_due_window(instant, now, self.check_interval):
                    continue
                if self._ledger.is_notified(key):
                    continue

                try:
                    report = self._dispatcher.dispatch(reminder, instant)
                    ok = report.ok
                except Exception as e:
                    logger.error(f"[Reminders] Dispatch of {key} failed: {e}", exc_info=True)
                    ok = False

                # Marked even on failure: never risk a duplicate alert
                self._ledger.mark_notified(key, now)
                (result.dispatched if ok else result.failed).append(key)

        result.evicted = self._ledger.evict_older_than(now - self.retention)
        self._last_result = result
        return result

    def _tick(self):
        result = self.run_cycle()
        if result.dispatched or result.failed:
            logger.info(
                f"[Reminders] Cycle at {result.checked_at:%Y-%m-%d %H:%M:%S}: "
                f"{len(result.dispatched)} dispatched, {len(result.failed)} failed"
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Bootstrap permission and start the evaluation job."""
        if self._stopped:
            logger.warning("[Reminders] A stopped scheduler cannot be restarted; create a new one")
            return False
        if self._scheduler.running:
            return True

        self.bootstrap_permission()
        self._scheduler.add_job(
            self._tick,
            "interval",
            seconds=int(self.check_interval.total_seconds()),
            id=EVALUATION_JOB_ID,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            f"[Reminders] Scheduler started for {self.user or 'anonymous'} "
            f"(every {int(self.check_interval.total_seconds())}s)"
        )
        return True

    def stop(self):
        """Cancel the evaluation job and the dwell timer. Final."""
        if self._stopped:
            return
        self._stopped = True

        for job_id in (EVALUATION_JOB_ID, PERMISSION_JOB_ID):
            try:
                self._scheduler.remove_job(job_id)
            except JobLookupError:
                pass
        self._markers.cancel()

        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info(f"[Reminders] Scheduler stopped for {self.user or 'anonymous'}")

    @property
    def running(self) -> bool:
        return not self._stopped and self._scheduler.running

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def active_reminder_ids(self):
        return self._markers.snapshot()

    @property
    def ledger_size(self) -> int:
        return len(self._ledger)

    def get_job(self, job_id: str):
        return self._scheduler.get_job(job_id)

    def get_status(self) -> Dict:
        try:
            permission = self.desktop.permission().value
        except Exception:
            permission = Permission.DENIED.value
        return {
            "running": self.running,
            "user": self.user,
            "permission": permission,
            "check_interval_seconds": int(self.check_interval.total_seconds()),
            "last_check_at": self._last_check_at.isoformat() if self._last_check_at else None,
            "ledger_size": self.ledger_size,
            "active_reminder_ids": sorted(self.active_reminder_ids),
        }


# ============================================================================
# Session registry
# ============================================================================

_session_schedulers: Dict[str, ReminderScheduler] = {}
_session_lock = threading.Lock()


def build_desktop_notifier() -> NotificationCapability:
    if not get_config("desktop_enabled", True):
        return NullNotifier()
    return DesktopNotifier(timeout_ms=get_config("desktop_timeout_ms", 10000))


def start_session_scheduler(
    user: str,
    store: Optional[ReminderStore] = None,
    desktop: Optional[NotificationCapability] = None,
    in_app: Optional[InAppAlertSink] = None,
    **kwargs,
) -> ReminderScheduler:
    """Start ``user``'s reminder scheduler, replacing their previous one.

    Other users' schedulers are left running.
    """
    scheduler = ReminderScheduler(
        store or SqliteReminderStore(user_id=user, tz=get_timezone()),
        desktop or build_desktop_notifier(),
        in_app or get_alert_hub().for_user(user),
        user=user,
        **kwargs,
    )
    with _session_lock:
        previous = _session_schedulers.pop(user, None)
        if previous is not None:
            previous.stop()
        scheduler.start()
        _session_schedulers[user] = scheduler
    return scheduler


def stop_session_scheduler(user: Optional[str]) -> bool:
    """Tear down ``user``'s scheduler. Returns False if they had none."""
    if not user:
        return False
    with _session_lock:
        scheduler = _session_schedulers.pop(user, None)
    if scheduler is None:
        return False
    scheduler.stop()
    return True


def stop_all_session_schedulers() -> int:
    """Tear down every session's scheduler (process shutdown)."""
    with _session_lock:
        schedulers = list(_session_schedulers.values())
        _session_schedulers.clear()
    for scheduler in schedulers:
        scheduler.stop()
    return len(schedulers)


def get_session_scheduler(user: Optional[str]) -> Optional[ReminderScheduler]:
    if not user:
        return None
    with _session_lock:
        return _session_schedulers.get(user)
