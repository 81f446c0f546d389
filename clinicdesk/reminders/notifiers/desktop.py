# ============================================================================
# CLINICDESK - Desktop Notifier
# ============================================================================
# Shows desktop toasts through the freedesktop `notify-send` CLI.
#
# Configuration (ReminderConfig):
#   desktop_enabled     - False pins permission to "denied"
#   desktop_timeout_ms  - How long the toast stays up
#
# Permission starts "undetermined" and is settled by request(): granted
# when notify-send answers, denied otherwise.
# ============================================================================

import logging
import subprocess
import threading

from .base import NotificationCapability, Permission
from ..models import DispatchError

logger = logging.getLogger("reminders.notifiers.desktop")


class DesktopNotifier(NotificationCapability):
    """Desktop toast notifications via notify-send."""

    channel_name = "desktop"

    def __init__(
        self,
        enabled: bool = True,
        timeout_ms: int = 10000,
        app_name: str = "ClinicDesk",
        cli_path: str = "notify-send",
    ):
        self.enabled = enabled
        self.timeout_ms = timeout_ms
        self.app_name = app_name
        self.cli_path = cli_path
        self._permission = Permission.UNDETERMINED if enabled else Permission.DENIED
        self._lock = threading.Lock()

    def is_configured(self) -> bool:
        """Check if notify-send is available."""
        try:
            result = subprocess.run(
                [self.cli_path, "--version"],
                capture_output=True,
                timeout=5,
            )
            return result.returncode == 0
        except (FileNotFoundError, subprocess.TimeoutExpired):
            return False

    def permission(self) -> Permission:
        with self._lock:
            return self._permission

    def request(self) -> Permission:
        """Settle an undetermined permission. Decided states are kept."""
        with self._lock:
            if self._permission is not Permission.UNDETERMINED:
                return self._permission

        granted = self.is_configured()

        with self._lock:
            if self._permission is Permission.UNDETERMINED:
                self._permission = Permission.GRANTED if granted else Permission.DENIED
                logger.info(f"Desktop notification permission {self._permission.value}")
            return self._permission

    def show(self, title: str, body: str, tag: str) -> None:
        cmd = [
            self.cli_path,
            "--app-name", self.app_name,
            "--expire-time", str(self.timeout_ms),
            # Same tag replaces the previous toast instead of stacking
            "--hint", f"string:x-canonical-private-synchronous:{tag}",
            title,
            body,
        ]
        try:
            subprocess.run(cmd, capture_output=True, timeout=5, check=True)
        except (OSError, subprocess.SubprocessError) as e:
            raise DispatchError(self.channel_name, tag, e) from e
