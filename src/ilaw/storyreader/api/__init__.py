"""API module for the reading platform REST client."""

from .platform import (
    PlatformAuthError,
    PlatformClient,
    PlatformError,
    PlatformNotFoundError,
)

__all__ = [
    "PlatformAuthError",
    "PlatformClient",
    "PlatformError",
    "PlatformNotFoundError",
]
