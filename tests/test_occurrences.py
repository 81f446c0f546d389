"""
CLINICDESK — Occurrence Calculator Tests
=========================================
Tests: one-time window, daily target day, per-day instants, malformed and
unsupported recurrence configs.
"""

import datetime

import pytest

from clinicdesk.reminders.occurrences import (
    compute_due_occurrences,
    expected_times_for_day,
    is_within_due_window,
    last_expected_occurrence_day,
)
from tests.conftest import daily, dt, make_reminder

WINDOW = datetime.timedelta(seconds=60)


class TestDueWindow:
    """Half-open [instant, instant + window) check."""

    def test_window_bounds(self):
        t = dt("2024-01-05T09:00:00")
        assert is_within_due_window(t, t, WINDOW)
        assert is_within_due_window(t, t + datetime.timedelta(seconds=59), WINDOW)
        assert not is_within_due_window(t, t + WINDOW, WINDOW)
        assert not is_within_due_window(t, t - datetime.timedelta(seconds=1), WINDOW)


class TestOneTimeReminders:
    """recurrence none / absent."""

    def test_due_inside_window(self):
        r = make_reminder(at="2024-03-10T14:30:00")
        assert compute_due_occurrences(r, dt("2024-03-10T14:30:20")) == [dt("2024-03-10T14:30:00")]

    def test_not_due_before_instant(self):
        r = make_reminder(at="2024-03-10T14:30:00")
        assert compute_due_occurrences(r, dt("2024-03-10T14:29:59")) == []

    def test_not_due_hours_later(self):
        r = make_reminder(at="2024-03-10T14:30:00")
        assert compute_due_occurrences(r, dt("2024-03-10T14:31:00")) == []
        assert compute_due_occurrences(r, dt("2024-03-10T19:00:00")) == []

    def test_explicit_none_type(self):
        r = make_reminder(at="2024-03-10T14:30:00", recurrence={"type": "none"})
        assert compute_due_occurrences(r, dt("2024-03-10T14:30:00")) == [dt("2024-03-10T14:30:00")]

    def test_inactive_reminder_has_no_occurrences(self):
        r = make_reminder(at="2024-03-10T14:30:00", is_active=False)
        assert compute_due_occurrences(r, dt("2024-03-10T14:30:10")) == []


class TestDailyTargetDay:
    """Most recent scheduled day on or before now."""

    def test_every_day(self):
        r = make_reminder(recurrence=daily(1, 2))
        assert last_expected_occurrence_day(r, dt("2024-01-05T09:00:05")) == dt("2024-01-05T00:00:00")

    def test_interval_two_backs_off_to_previous_step(self):
        r = make_reminder(at="2024-01-01T09:00:00", recurrence=daily(2, 1))
        assert last_expected_occurrence_day(r, dt("2024-01-04T00:00:00")) == dt("2024-01-03T00:00:00")
        assert last_expected_occurrence_day(r, dt("2024-01-04T23:59:59")) == dt("2024-01-03T00:00:00")
        assert last_expected_occurrence_day(r, dt("2024-01-05T00:00:00")) == dt("2024-01-05T00:00:00")

    def test_base_day_in_future(self):
        r = make_reminder(at="2024-02-01T09:00:00", recurrence=daily())
        assert last_expected_occurrence_day(r, dt("2024-01-31T23:59:59")) is None
        assert compute_due_occurrences(r, dt("2024-01-31T23:59:59")) == []

    def test_base_day_itself(self):
        r = make_reminder(at="2024-02-01T09:00:00", recurrence=daily(5))
        assert last_expected_occurrence_day(r, dt("2024-02-01T00:00:00")) == dt("2024-02-01T00:00:00")

    @pytest.mark.parametrize("interval", [1, 3, 7, 30])
    def test_long_running_series_never_overshoots(self, interval):
        r = make_reminder(at="2020-01-01T08:15:00", recurrence=daily(interval))
        now = dt("2024-06-15T10:00:00")
        target = last_expected_occurrence_day(r, now)
        assert target <= now
        assert (target.date() - datetime.date(2020, 1, 1)).days % interval == 0
        assert 0 <= (now.date() - target.date()).days < interval

    def test_one_time_reminder_has_no_target_day(self):
        r = make_reminder()
        assert last_expected_occurrence_day(r, dt("2024-01-05T09:00:00")) is None


class TestDailyInstants:
    """Instants generated for the target day."""

    def test_two_per_day_scenario(self):
        r = make_reminder(at="2024-01-01T09:00:00", recurrence=daily(1, 2))
        assert compute_due_occurrences(r, dt("2024-01-05T09:00:05")) == [
            dt("2024-01-05T09:00:00"),
            dt("2024-01-05T21:00:00"),
        ]

    def test_once_per_day_uses_anchor_time(self):
        r = make_reminder(at="2024-01-01T07:45:30", recurrence=daily(1, 1))
        assert expected_times_for_day(r, dt("2024-01-09T00:00:00")) == [dt("2024-01-09T07:45:30")]

    @pytest.mark.parametrize("times_per_day", [1, 2, 3, 4, 6, 24])
    def test_midnight_anchor_yields_n_instants(self, times_per_day):
        r = make_reminder(at="2024-01-01T00:00:00", recurrence=daily(1, times_per_day))
        day = dt("2024-01-10T00:00:00")
        instants = expected_times_for_day(r, day)
        assert len(instants) == times_per_day
        assert len(set(instants)) == times_per_day
        assert all(i.date() == day.date() for i in instants)
        assert all(i >= r.reminder_datetime for i in instants)

    def test_instants_past_midnight_are_dropped(self):
        r = make_reminder(at="2024-01-01T09:00:00", recurrence=daily(1, 3))
        assert expected_times_for_day(r, dt("2024-01-02T00:00:00")) == [
            dt("2024-01-02T09:00:00"),
            dt("2024-01-02T17:00:00"),
        ]

    def test_first_day_starts_at_anchor(self):
        r = make_reminder(at="2024-01-01T06:00:00", recurrence=daily(1, 4))
        assert expected_times_for_day(r, dt("2024-01-01T00:00:00")) == [
            dt("2024-01-01T06:00:00"),
            dt("2024-01-01T12:00:00"),
            dt("2024-01-01T18:00:00"),
        ]

    def test_day_before_anchor_yields_nothing(self):
        r = make_reminder(at="2024-01-05T06:00:00", recurrence=daily(1, 1))
        assert expected_times_for_day(r, dt("2024-01-04T00:00:00")) == []

    def test_previous_day_included_just_after_midnight(self):
        r = make_reminder(at="2024-01-01T23:59:30", recurrence=daily(1, 1))
        assert compute_due_occurrences(r, dt("2024-01-06T00:00:20")) == [
            dt("2024-01-05T23:59:30"),
            dt("2024-01-06T23:59:30"),
        ]
        assert compute_due_occurrences(r, dt("2024-01-06T00:01:00")) == [dt("2024-01-06T23:59:30")]

    def test_no_previous_day_before_series_start(self):
        r = make_reminder(at="2024-01-05T23:59:30", recurrence=daily(1, 1))
        assert compute_due_occurrences(r, dt("2024-01-05T00:00:20")) == [dt("2024-01-05T23:59:30")]

    def test_json_text_config(self):
        r = make_reminder(recurrence='{"type": "daily", "interval": 1, "times_per_day": 2}')
        assert len(compute_due_occurrences(r, dt("2024-01-05T09:00:05"))) == 2


class TestInertConfigs:
    """Malformed and unsupported configs produce nothing."""

    @pytest.mark.parametrize("config", [
        {"type": "daily", "interval": 0, "times_per_day": 1},
        {"type": "daily", "interval": 1, "times_per_day": 0},
        {"type": "daily", "interval": -2},
        {"type": "daily", "times_per_day": "often"},
        {"type": "hourly"},
        "not json",
        ["daily"],
    ])
    def test_malformed_config(self, config):
        r = make_reminder(at="2024-01-01T09:00:00", recurrence=config)
        assert compute_due_occurrences(r, dt("2024-01-05T09:00:05")) == []

    @pytest.mark.parametrize("rtype", ["weekly", "monthly", "yearly"])
    def test_unsupported_types(self, rtype):
        r = make_reminder(at="2024-01-01T09:00:00", recurrence={"type": rtype, "interval": 1})
        assert compute_due_occurrences(r, dt("2024-01-08T09:00:05")) == []
