"""
CLINICDESK Messaging Module
Real-time push to browser sessions.
"""
from .websocket import MessageBroadcaster, get_broadcaster

__all__ = [
    "MessageBroadcaster",
    "get_broadcaster",
]
