"""
CLINICDESK Reminders Module
Due-reminder detection, at-most-once notification and active highlights.
"""
from .routes import register_reminder_routes
from .scheduler_jobs import (
    ReminderScheduler,
    start_session_scheduler,
    stop_all_session_schedulers,
    stop_session_scheduler,
)
from .models import init_reminder_schema

__all__ = [
    "register_reminder_routes",
    "ReminderScheduler",
    "start_session_scheduler",
    "stop_session_scheduler",
    "stop_all_session_schedulers",
    "init_reminder_schema",
]
