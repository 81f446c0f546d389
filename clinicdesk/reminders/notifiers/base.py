# ============================================================================
# CLINICDESK - Base Notification Capabilities
# ============================================================================

from abc import ABC, abstractmethod
from enum import Enum


class Permission(str, Enum):
    """Platform notification permission state."""
    GRANTED = "granted"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


class NotificationCapability(ABC):
    """Abstract base class for platform (desktop/mobile) notifiers."""

    channel_name: str = "base"

    @abstractmethod
    def permission(self) -> Permission:
        """Current permission state. Must not block."""
        pass

    @abstractmethod
    def request(self) -> Permission:
        """Ask for permission; may block on the user or the platform."""
        pass

    @abstractmethod
    def show(self, title: str, body: str, tag: str) -> None:
        """Show a notification. ``tag`` lets the platform coalesce duplicates."""
        pass

    def is_configured(self) -> bool:
        """Check if the platform backend is available."""
        return True


class InAppAlertSink(ABC):
    """Abstract base class for in-app alert delivery."""

    channel_name: str = "in_app"

    @abstractmethod
    def show_in_app_alert(self, title: str, body: str, **extra) -> None:
        """Raise an in-app alert (toast)."""
        pass
