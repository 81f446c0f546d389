"""
CLINICDESK Reminders — Occurrence Calculator

Pure functions mapping a reminder definition and "now" to the trigger
instants of its current recurrence cycle. At most the two most recent active
days are enumerated, so the cost per reminder is O(times_per_day) no matter
how old the series is.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from .models import MalformedRecurrenceConfig, RecurrenceConfig, RecurrenceType, Reminder

logger = logging.getLogger(__name__)

DAY = timedelta(days=1)
DEFAULT_WINDOW = timedelta(seconds=60)


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def is_within_due_window(instant: datetime, now: datetime, window: timedelta = DEFAULT_WINDOW) -> bool:
    """True when ``0 <= now - instant < window``."""
    elapsed = now - instant
    return timedelta(0) <= elapsed < window


def last_expected_occurrence_day(
    reminder: Reminder,
    now: datetime,
    config: Optional[RecurrenceConfig] = None,
) -> Optional[datetime]:
    """Most recent scheduled day (midnight) on or before ``now``.

    Returns None for non-daily reminders and for series whose base day is
    still in the future.
    """
    config = config or reminder.recurrence()
    if config.type is not RecurrenceType.DAILY:
        return None

    base_day = start_of_day(reminder.reminder_datetime)
    if base_day > now:
        return None

    step = DAY * config.interval
    target = base_day + step * ((now - base_day) // step)
    if target > now:
        target -= step
    return target


def expected_times_for_day(
    reminder: Reminder,
    target_day: datetime,
    config: Optional[RecurrenceConfig] = None,
) -> List[datetime]:
    """All trigger instants of a daily reminder on ``target_day``.

    The first instant uses the anchor's time of day; the rest are spaced
    24h / times_per_day apart. Instants that spill past midnight or fall
    before the anchor itself are dropped.
    """
    config = config or reminder.recurrence()
    anchor = reminder.reminder_datetime
    day = target_day.date()
    first = datetime.combine(day, anchor.time())

    if config.times_per_day == 1:
        if first >= anchor and first.date() == day:
            return [first]
        return []

    spacing = DAY / config.times_per_day
    instants = []
    for i in range(config.times_per_day):
        instant = first + spacing * i
        if instant.date() == day and instant >= anchor:
            instants.append(instant)
    return instants


def compute_due_occurrences(
    reminder: Reminder,
    now: datetime,
    window: timedelta = DEFAULT_WINDOW,
) -> List[datetime]:
    """Candidate trigger instants for ``reminder`` as of ``now``.

    One-time reminders only yield their instant while it sits inside the due
    window, so an overdue alarm does not refire every cycle. Daily reminders
    yield every instant of the last expected day, plus the previous scheduled
    day's while ``now`` is within ``window`` of midnight; the caller applies
    the window. A malformed recurrence config yields nothing.
    """
    if not reminder.is_active:
        return []

    try:
        config = reminder.recurrence()
    except MalformedRecurrenceConfig as e:
        logger.warning(f"[Reminders] Reminder {reminder.id} has a malformed recurrence config: {e}")
        return []

    if config.type is RecurrenceType.NONE:
        instant = reminder.reminder_datetime
        return [instant] if is_within_due_window(instant, now, window) else []

    if config.type is RecurrenceType.DAILY:
        target_day = last_expected_occurrence_day(reminder, now, config)
        if target_day is None:
            return []
        instants = expected_times_for_day(reminder, target_day, config)

        # Just past midnight the previous day's last instants can still be due
        previous_day = target_day - DAY * config.interval
        if now - target_day < window and previous_day >= start_of_day(reminder.reminder_datetime):
            instants = expected_times_for_day(reminder, previous_day, config) + instants
        return instants

    # TODO: weekly (config.days), monthly and yearly series
    logger.debug(f"[Reminders] Recurrence type '{config.type.value}' not evaluated for reminder {reminder.id}")
    return []
