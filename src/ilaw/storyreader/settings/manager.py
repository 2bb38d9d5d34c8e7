"""Manager for platform-wide system settings.

Settings are persisted in the database so they survive restarts and are
shared by every server process. Reads are served from an in-memory cache
that is dropped on every write and after ``cache_ttl`` seconds, so a
change made by another process is seen within that window.
"""

import logging
import threading
import time
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import select

from ..db.models import as_utc
from ..db.sqlite import Database, get_db
from .models import SystemSetting
from .schemas import SystemSettings, SystemSettingsUpdate

logger = logging.getLogger(__name__)


class SettingsValidationError(ValueError):
    """Raised when a setting value is unknown or out of range."""

    pass


SETTINGS_METADATA = {
    "maintenance_mode": {
        "type": "bool",
        "default": "false",
        "description": "Block reading for everyone except admins",
    },
    "allow_new_registrations": {
        "type": "bool",
        "default": "true",
        "description": "Accept new account registrations",
    },
    "require_email_verification": {
        "type": "bool",
        "default": "true",
        "description": "Require a verified email before login",
    },
    "auto_approve_teachers": {
        "type": "bool",
        "default": "false",
        "description": "Approve new teacher accounts automatically",
    },
    "auto_approve_students": {
        "type": "bool",
        "default": "false",
        "description": "Approve new student accounts automatically",
    },
    "session_timeout_minutes": {
        "type": "int",
        "default": "60",
        "min": 1,
        "max": 480,
        "description": "Login session timeout (minutes)",
    },
    "max_login_attempts": {
        "type": "int",
        "default": "5",
        "min": 3,
        "max": 10,
        "description": "Failed logins allowed before lockout",
    },
    "require_strong_passwords": {
        "type": "bool",
        "default": "true",
        "description": "Enforce password strength rules",
    },
}


class SystemSettingsManager:
    """Reads and writes system settings through a short-lived cache."""

    def __init__(
        self,
        db: Optional[Database] = None,
        cache_ttl: float = 30.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Initialize settings manager.

        Args:
            db: Database instance
            cache_ttl: Seconds a cached read stays valid
            clock: Monotonic seconds (injectable for tests)
        """
        self.db = db or get_db()
        self.cache_ttl = cache_ttl
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._cache: Optional[SystemSettings] = None
        self._cached_at: Optional[float] = None

    def _parse_value(self, value: str, value_type: str) -> Any:
        """Parse string value to appropriate type."""
        if value_type == "bool":
            return value.lower() in ("true", "1", "yes")
        elif value_type == "int":
            return int(value)
        else:
            return value

    def _serialize_value(self, value: Any) -> str:
        """Serialize value to string for storage."""
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def _validate(self, key: str, value: Any) -> None:
        metadata = SETTINGS_METADATA.get(key)
        if not metadata:
            raise SettingsValidationError(f"Unknown setting: {key}")

        if metadata["type"] == "bool":
            if not isinstance(value, bool):
                raise SettingsValidationError(f"{key} must be true or false")
        elif metadata["type"] == "int":
            if isinstance(value, bool) or not isinstance(value, int):
                raise SettingsValidationError(f"{key} must be a whole number")
            if value < metadata["min"] or value > metadata["max"]:
                raise SettingsValidationError(
                    f"{key} must be between {metadata['min']} and {metadata['max']}"
                )

    def _load(self) -> SystemSettings:
        values = {key: self._parse_value(m["default"], m["type"]) for key, m in SETTINGS_METADATA.items()}
        with self.db.get_session() as session:
            for row in session.execute(select(SystemSetting)).scalars().all():
                metadata = SETTINGS_METADATA.get(row.key)
                if metadata:
                    values[row.key] = self._parse_value(row.value, metadata["type"])
        return SystemSettings(**values)

    def _is_fresh(self) -> bool:
        return (
            self._cache is not None
            and self._cached_at is not None
            and self._clock() - self._cached_at < self.cache_ttl
        )

    def invalidate(self) -> None:
        """Drop the cached settings."""
        with self._lock:
            self._cache = None
            self._cached_at = None

    def get_settings(self) -> SystemSettings:
        """Get all settings, from cache when fresh."""
        with self._lock:
            if not self._is_fresh():
                self._cache = self._load()
                self._cached_at = self._clock()
            return self._cache.model_copy()

    def get_setting(self, key: str) -> Any:
        """Get a single setting value."""
        if key not in SETTINGS_METADATA:
            raise SettingsValidationError(f"Unknown setting: {key}")
        return getattr(self.get_settings(), key)

    def update_settings(
        self, update: SystemSettingsUpdate, updated_by: Optional[int] = None
    ) -> SystemSettings:
        """Validate and persist the fields set on an update.

        Raises:
            SettingsValidationError: If any value is out of range
        """
        changes = update.model_dump(exclude_none=True)
        for key, value in changes.items():
            self._validate(key, value)

        if changes:
            with self.db.get_session() as session:
                existing = {
                    row.key: row
                    for row in session.execute(
                        select(SystemSetting).where(SystemSetting.key.in_(list(changes)))
                    ).scalars().all()
                }
                for key, value in changes.items():
                    serialized = self._serialize_value(value)
                    row = existing.get(key)
                    if row:
                        row.value = serialized
                        row.updated_by = updated_by
                    else:
                        session.add(
                            SystemSetting(
                                key=key,
                                value=serialized,
                                value_type=SETTINGS_METADATA[key]["type"],
                                updated_by=updated_by,
                            )
                        )
            logger.info("System settings updated by %s: %s", updated_by, changes)

        self.invalidate()
        return self.get_settings()

    def is_maintenance_mode(self) -> bool:
        """Check whether maintenance mode is on."""
        return self.get_settings().maintenance_mode

    def set_maintenance_mode(
        self, enabled: bool, updated_by: Optional[int] = None
    ) -> SystemSettings:
        """Turn maintenance mode on or off."""
        return self.update_settings(
            SystemSettingsUpdate(maintenance_mode=enabled), updated_by=updated_by
        )

    def last_updated(self, key: str) -> Optional[datetime]:
        """When a setting was last written, or None if never."""
        with self.db.get_session() as session:
            row = session.execute(
                select(SystemSetting).where(SystemSetting.key == key)
            ).scalar_one_or_none()
            return as_utc(row.updated_at) if row else None
