"""Platform-wide system settings, including maintenance mode."""

from .manager import SETTINGS_METADATA, SettingsValidationError, SystemSettingsManager
from .models import SystemSetting
from .schemas import SystemSettings, SystemSettingsUpdate

__all__ = [
    "SETTINGS_METADATA",
    "SettingsValidationError",
    "SystemSettingsManager",
    "SystemSetting",
    "SystemSettings",
    "SystemSettingsUpdate",
]
