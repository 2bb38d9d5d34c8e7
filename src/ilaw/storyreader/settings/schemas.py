"""Schemas for platform-wide system settings."""

from typing import Optional

from pydantic import Field

from ..db.schemas import CamelModel


class SystemSettings(CamelModel):
    """All system settings with their effective values."""

    maintenance_mode: bool = False
    allow_new_registrations: bool = True
    require_email_verification: bool = True
    auto_approve_teachers: bool = False
    auto_approve_students: bool = False
    session_timeout_minutes: int = Field(default=60, ge=1, le=480)
    max_login_attempts: int = Field(default=5, ge=3, le=10)
    require_strong_passwords: bool = True


class SystemSettingsUpdate(CamelModel):
    """Partial update; unset fields keep their current value."""

    maintenance_mode: Optional[bool] = None
    allow_new_registrations: Optional[bool] = None
    require_email_verification: Optional[bool] = None
    auto_approve_teachers: Optional[bool] = None
    auto_approve_students: Optional[bool] = None
    session_timeout_minutes: Optional[int] = None
    max_login_attempts: Optional[int] = None
    require_strong_passwords: Optional[bool] = None
