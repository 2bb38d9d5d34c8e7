"""HTTP API for reading sessions and progress."""

from .app import OrphanReaper, create_app, run_server
from .auth import AuthError, CurrentUser, create_access_token, decode_access_token

__all__ = [
    "create_app",
    "run_server",
    "OrphanReaper",
    "AuthError",
    "CurrentUser",
    "create_access_token",
    "decode_access_token",
]
