# ============================================================================
# CLINICDESK - In-App Alerts
# ============================================================================
# Toasts for the web UI. Each user's alerts are kept in their own bounded
# buffer for polling clients and pushed only to that user's WebSocket
# connections when the server loop is bound. The scheduler calls in from a
# worker thread, so the push is handed to the event loop with
# run_coroutine_threadsafe.
# ============================================================================

import asyncio
import logging
import threading
from collections import deque
from datetime import datetime
from typing import Deque, Dict, List, Optional

from .base import InAppAlertSink

logger = logging.getLogger("reminders.notifiers.inapp")


class InAppAlertHub:
    """Per-user in-app alert buffers plus WebSocket push."""

    def __init__(self, buffer_size: int = 50):
        self.buffer_size = buffer_size
        self._recent: Dict[str, Deque[Dict]] = {}
        self._lock = threading.Lock()
        self._broadcaster = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind(self, broadcaster, loop: asyncio.AbstractEventLoop):
        """Attach the broadcaster and the loop it runs on."""
        self._broadcaster = broadcaster
        self._loop = loop

    def unbind(self):
        self._broadcaster = None
        self._loop = None

    def for_user(self, user: str) -> "UserAlertSink":
        return UserAlertSink(self, user)

    def publish(self, user: str, title: str, body: str, **extra) -> Dict:
        """Buffer an alert for ``user`` and push it to their connections."""
        alert = {
            "title": title,
            "body": body,
            "created_at": datetime.now().isoformat(timespec="seconds"),
            **extra,
        }
        with self._lock:
            buffer = self._recent.get(user)
            if buffer is None:
                buffer = self._recent[user] = deque(maxlen=self.buffer_size)
            buffer.appendleft(alert)

        loop = self._loop
        if self._broadcaster is None or loop is None or loop.is_closed():
            return alert
        future = asyncio.run_coroutine_threadsafe(
            self._broadcaster.send_to_user(user, "reminder", alert), loop
        )
        future.add_done_callback(_log_push_failure)
        return alert

    def recent_alerts(self, user: str, limit: Optional[int] = None) -> List[Dict]:
        """Newest first."""
        with self._lock:
            alerts = list(self._recent.get(user, ()))
        return alerts[:limit] if limit else alerts

    def clear(self, user: Optional[str] = None):
        """Forget ``user``'s alerts, or everyone's when no user is given."""
        with self._lock:
            if user is None:
                self._recent.clear()
            else:
                self._recent.pop(user, None)


class UserAlertSink(InAppAlertSink):
    """The in-app channel of one user's session."""

    channel_name = "in_app"

    def __init__(self, hub: InAppAlertHub, user: str):
        self.hub = hub
        self.user = user

    def show_in_app_alert(self, title: str, body: str, **extra) -> None:
        self.hub.publish(self.user, title, body, **extra)


def _log_push_failure(future):
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error(f"[Reminders] In-app alert push failed: {exc}")


_hub: Optional[InAppAlertHub] = None


def get_alert_hub() -> InAppAlertHub:
    """Get or create the singleton in-app alert hub."""
    global _hub
    if _hub is None:
        from ..config import get_config
        _hub = InAppAlertHub(buffer_size=get_config("alert_buffer_size", 50))
    return _hub
