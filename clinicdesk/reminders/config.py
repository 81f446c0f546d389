# ============================================================================
# CLINICDESK - Reminder Configuration Management
# ============================================================================
# Database-backed configuration with type casting and defaults.
# "local" timezone means the host clock.
# ============================================================================

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from . import models

logger = logging.getLogger("reminders.config")

# key -> (default, value_type, category)
DEFAULT_CONFIG = {
    # Timezone
    "timezone": ("local", "string", "general"),

    # Scheduler timing
    "check_interval_seconds": (60, "int", "scheduler"),
    "retention_hours": (24, "int", "scheduler"),
    "dwell_seconds": (60, "int", "scheduler"),

    # Desktop notifications
    "desktop_enabled": (True, "bool", "desktop"),
    "desktop_title": ("Dental Care Reminder", "string", "desktop"),
    "desktop_timeout_ms": (10000, "int", "desktop"),

    # In-app alerts
    "in_app_title": ("Reminder Due", "string", "in_app"),
    "alert_buffer_size": (50, "int", "in_app"),
}


def _init_config_schema(conn):
    conn.execute("""
        CREATE TABLE IF NOT EXISTS ReminderConfig (
            key TEXT PRIMARY KEY,
            value TEXT,
            value_type TEXT DEFAULT 'string',
            category TEXT DEFAULT 'general',
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_by TEXT
        )
    """)


class ReminderConfig:
    """
    Database-backed configuration manager for the reminder scheduler.

    Values live in the ReminderConfig table; anything missing falls back to
    DEFAULT_CONFIG.
    """

    _cache: Dict[str, Any] = {}
    _cache_loaded: bool = False

    @classmethod
    def _load_cache(cls):
        """Load all config into memory cache."""
        if cls._cache_loaded:
            return

        for key, (default, vtype, category) in DEFAULT_CONFIG.items():
            cls._cache[key] = default

        conn = models._get_conn()
        _init_config_schema(conn)
        rows = conn.execute("SELECT key, value, value_type FROM ReminderConfig").fetchall()
        conn.close()

        for row in rows:
            cls._cache[row["key"]] = cls._cast_value(row["value"], row["value_type"])

        cls._cache_loaded = True

    @classmethod
    def _cast_value(cls, value: str, value_type: str) -> Any:
        """Cast string value to appropriate type."""
        if value is None:
            return None
        if value_type == "bool":
            return value.lower() in ("true", "1", "yes", "on")
        if value_type == "int":
            try:
                return int(value)
            except ValueError:
                logger.warning(f"Invalid int config value {value!r}, using 0")
                return 0
        if value_type == "json":
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return {}
        return value

    @classmethod
    def _serialize_value(cls, value: Any, value_type: str) -> str:
        """Serialize value to string for storage."""
        if value is None:
            return ""
        if value_type == "bool":
            return "true" if value else "false"
        if value_type == "int":
            return str(value)
        if value_type == "json":
            return json.dumps(value)
        return str(value)

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        cls._load_cache()
        return cls._cache.get(key, default)

    @classmethod
    def set(
        cls,
        key: str,
        value: Any,
        value_type: str = None,
        category: str = "general",
        user: str = None,
    ) -> bool:
        """Set a configuration value."""
        cls._load_cache()

        if value_type is None:
            if key in DEFAULT_CONFIG:
                _, value_type, category = DEFAULT_CONFIG[key]
            elif isinstance(value, bool):
                value_type = "bool"
            elif isinstance(value, int):
                value_type = "int"
            elif isinstance(value, dict):
                value_type = "json"
            else:
                value_type = "string"

        serialized = cls._serialize_value(value, value_type)

        conn = models._get_conn()
        _init_config_schema(conn)
        conn.execute(
            """INSERT INTO ReminderConfig (key, value, value_type, category, updated_by)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET
               value = excluded.value,
               value_type = excluded.value_type,
               category = excluded.category,
               updated_at = CURRENT_TIMESTAMP,
               updated_by = excluded.updated_by""",
            (key, serialized, value_type, category, user),
        )
        conn.commit()
        conn.close()

        old_value = cls._cache.get(key)
        cls._cache[key] = cls._cast_value(serialized, value_type)
        if old_value != cls._cache[key]:
            logger.info(f"Config {key} changed by {user or 'SYSTEM'}: {old_value!r} -> {cls._cache[key]!r}")

        return True

    @classmethod
    def get_all(cls, category: str = None) -> Dict[str, Any]:
        """Get all configuration values, optionally filtered by category."""
        cls._load_cache()

        if category is None:
            return dict(cls._cache)

        result = {}
        for key, (default, vtype, cat) in DEFAULT_CONFIG.items():
            if cat == category:
                result[key] = cls._cache.get(key, default)
        return result

    @classmethod
    def reset_cache(cls):
        """Reset the configuration cache."""
        cls._cache = {}
        cls._cache_loaded = False

    @classmethod
    def init_defaults(cls):
        """Initialize default configuration values in database if not present."""
        conn = models._get_conn()
        _init_config_schema(conn)

        for key, (default, value_type, category) in DEFAULT_CONFIG.items():
            conn.execute(
                """INSERT OR IGNORE INTO ReminderConfig (key, value, value_type, category)
                   VALUES (?, ?, ?, ?)""",
                (key, cls._serialize_value(default, value_type), value_type, category),
            )

        conn.commit()
        conn.close()
        cls.reset_cache()


# Convenience functions
def get_config(key: str, default: Any = None) -> Any:
    """Get a configuration value."""
    return ReminderConfig.get(key, default)


def set_config(key: str, value: Any, user: str = None) -> bool:
    """Set a configuration value."""
    return ReminderConfig.set(key, value, user=user)


def get_all_config(category: str = None) -> Dict[str, Any]:
    """Get all configuration values."""
    return ReminderConfig.get_all(category)


# ============================================================================
# Timezone Helpers
# ============================================================================

def get_timezone() -> Optional[ZoneInfo]:
    """Configured zone, or None for the host clock."""
    tz_name = (get_config("timezone", "local") or "local").strip()
    if tz_name.lower() == "local":
        return None
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {tz_name!r}, falling back to host clock")
        return None


def get_local_now() -> datetime:
    """Current wall-clock time as a naive datetime in the configured zone."""
    tz = get_timezone()
    if tz is None:
        return datetime.now()
    return datetime.now(tz).replace(tzinfo=None)
