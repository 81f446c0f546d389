"""
CLINICDESK Reminders — Dedup Ledger

In-memory record of occurrences that already fired. Resets on restart.
"""
import logging
import threading
from datetime import datetime
from typing import Dict, Optional

from .models import OccurrenceKey

logger = logging.getLogger(__name__)


class DedupLedger:
    """OccurrenceKey -> first_notified_at, with time-bounded eviction."""

    def __init__(self):
        self._entries: Dict[OccurrenceKey, datetime] = {}
        self._lock = threading.Lock()

    def is_notified(self, key: OccurrenceKey) -> bool:
        with self._lock:
            return key in self._entries

    def mark_notified(self, key: OccurrenceKey, at: datetime) -> None:
        """Record ``key``. Re-marking keeps the first timestamp."""
        with self._lock:
            self._entries.setdefault(key, at)

    def first_notified_at(self, key: OccurrenceKey) -> Optional[datetime]:
        with self._lock:
            return self._entries.get(key)

    def evict_older_than(self, cutoff: datetime) -> int:
        """Drop entries recorded at or before ``cutoff``; returns the count."""
        with self._lock:
            stale = [key for key, at in self._entries.items() if at <= cutoff]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug(f"[Reminders] Evicted {len(stale)} ledger entries older than {cutoff.isoformat()}")
        return len(stale)

    def __contains__(self, key: OccurrenceKey) -> bool:
        return self.is_notified(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
