"""Reading session tracking and progress management."""

from .session import (
    NO_ACTIVE_SESSION,
    SessionEnd,
    SessionStart,
    SessionTracker,
)
from .progress import (
    InvalidProgressError,
    ProgressTracker,
    ReadingStats,
    calculate_percent_complete,
    clamp_percent,
    format_reading_time,
)

__all__ = [
    "NO_ACTIVE_SESSION",
    "SessionEnd",
    "SessionStart",
    "SessionTracker",
    "InvalidProgressError",
    "ProgressTracker",
    "ReadingStats",
    "calculate_percent_complete",
    "clamp_percent",
    "format_reading_time",
]
