# ============================================================================
# CLINICDESK - Reminder Notification Channels
# ============================================================================
# Desktop toasts (platform permission gated) and per-user in-app alerts.
# ============================================================================

from .base import InAppAlertSink, NotificationCapability, Permission
from .desktop import DesktopNotifier
from .inapp import InAppAlertHub, UserAlertSink, get_alert_hub
from .null import NullNotifier

__all__ = [
    "InAppAlertSink",
    "NotificationCapability",
    "Permission",
    "DesktopNotifier",
    "InAppAlertHub",
    "UserAlertSink",
    "get_alert_hub",
    "NullNotifier",
]
