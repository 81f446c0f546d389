"""
CLINICDESK — Dedup Ledger Tests
================================
"""

import datetime

from clinicdesk.reminders.ledger import DedupLedger
from clinicdesk.reminders.models import OccurrenceKey
from tests.conftest import dt

DAY = datetime.timedelta(hours=24)


class TestDedupLedger:

    def test_mark_and_lookup(self):
        ledger = DedupLedger()
        key = OccurrenceKey("r1", dt("2024-01-05T09:00:00"))
        assert not ledger.is_notified(key)
        ledger.mark_notified(key, dt("2024-01-05T09:00:05"))
        assert ledger.is_notified(key)
        assert key in ledger
        assert len(ledger) == 1

    def test_remark_keeps_first_timestamp(self):
        ledger = DedupLedger()
        key = OccurrenceKey("r1", dt("2024-01-05T09:00:00"))
        ledger.mark_notified(key, dt("2024-01-05T09:00:05"))
        ledger.mark_notified(key, dt("2024-01-05T09:00:45"))
        assert ledger.first_notified_at(key) == dt("2024-01-05T09:00:05")
        assert len(ledger) == 1

    def test_same_instant_different_reminders_are_distinct(self):
        ledger = DedupLedger()
        t = dt("2024-01-05T09:00:00")
        ledger.mark_notified(OccurrenceKey("r1", t), t)
        assert not ledger.is_notified(OccurrenceKey("r2", t))

    def test_entry_survives_until_retention_elapses(self):
        ledger = DedupLedger()
        marked_at = dt("2024-01-05T09:00:05")
        key = OccurrenceKey("r1", dt("2024-01-05T09:00:00"))
        ledger.mark_notified(key, marked_at)

        now = marked_at + DAY - datetime.timedelta(seconds=1)
        assert ledger.evict_older_than(now - DAY) == 0
        assert ledger.is_notified(key)

        now = marked_at + DAY
        assert ledger.evict_older_than(now - DAY) == 1
        assert not ledger.is_notified(key)

    def test_eviction_only_touches_stale_entries(self):
        ledger = DedupLedger()
        old = OccurrenceKey("r1", dt("2024-01-04T09:00:00"))
        fresh = OccurrenceKey("r1", dt("2024-01-05T09:00:00"))
        ledger.mark_notified(old, dt("2024-01-04T09:00:10"))
        ledger.mark_notified(fresh, dt("2024-01-05T09:00:10"))

        ledger.evict_older_than(dt("2024-01-05T09:00:10") - DAY)
        assert not ledger.is_notified(old)
        assert ledger.is_notified(fresh)

    def test_key_renders_as_dedupe_tag(self):
        key = OccurrenceKey("abc", dt("2024-01-05T21:00:00"))
        assert str(key) == "abc-2024-01-05T21:00:00"
