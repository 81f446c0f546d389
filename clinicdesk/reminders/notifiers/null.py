# ============================================================================
# CLINICDESK - No-op Notifier
# ============================================================================
# Used on headless hosts and when desktop notifications are disabled.
# ============================================================================

from .base import NotificationCapability, Permission


class NullNotifier(NotificationCapability):
    """Never shows anything; permission is always denied."""

    channel_name = "null"

    def permission(self) -> Permission:
        return Permission.DENIED

    def request(self) -> Permission:
        return Permission.DENIED

    def show(self, title: str, body: str, tag: str) -> None:
        pass

    def is_configured(self) -> bool:
        return False
