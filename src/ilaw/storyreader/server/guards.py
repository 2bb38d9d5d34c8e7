"""Request helpers shared by the blueprints.

Gives handlers the services attached to the app, authenticates the caller
from the Bearer header, and parses JSON bodies into pydantic models.
"""

from dataclasses import dataclass
from functools import wraps
from typing import Callable, Optional, Type, TypeVar

from flask import current_app, g, request
from pydantic import BaseModel
from werkzeug.exceptions import BadRequest, Forbidden

from ..config import Config
from ..db.sqlite import Database
from ..reading.progress import ProgressTracker
from ..reading.session import SessionTracker
from ..settings.manager import SystemSettingsManager
from .auth import CurrentUser, decode_access_token

EXTENSION_KEY = "storyreader"

MAINTENANCE_MESSAGE = "The platform is under maintenance. Please try again later."
ACCESS_DENIED = "Access denied. Insufficient permissions."

M = TypeVar("M", bound=BaseModel)


class MaintenanceModeError(Exception):
    """Raised when a non-admin uses a reading route during maintenance."""

    pass


@dataclass
class ReaderServices:
    """Everything a request handler needs, attached to the Flask app."""

    config: Config
    db: Database
    session_tracker: SessionTracker
    progress_tracker: ProgressTracker
    settings_manager: SystemSettingsManager


def services() -> ReaderServices:
    return current_app.extensions[EXTENSION_KEY]


def bearer_token() -> Optional[str]:
    """The token from an ``Authorization: Bearer`` header, if present."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def authenticate(token: Optional[str]) -> CurrentUser:
    """Verify a token and remember the caller on ``g.user``."""
    user = decode_access_token(token, services().config)
    g.user = user
    return user


def login_required(view: Callable) -> Callable:
    @wraps(view)
    def wrapper(*args, **kwargs):
        authenticate(bearer_token())
        return view(*args, **kwargs)

    return wrapper


def roles_required(*roles) -> Callable[[Callable], Callable]:
    """Restrict a view to the given roles."""
    allowed = {getattr(role, "value", role) for role in roles}

    def decorator(view: Callable) -> Callable:
        @wraps(view)
        def wrapper(*args, **kwargs):
            user = authenticate(bearer_token())
            if user.role not in allowed:
                raise Forbidden(ACCESS_DENIED)
            return view(*args, **kwargs)

        return wrapper

    return decorator


def reader_required(view: Callable) -> Callable:
    """Authenticate the caller and refuse non-admins during maintenance."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        user = authenticate(bearer_token())
        if not user.is_admin and services().settings_manager.is_maintenance_mode():
            raise MaintenanceModeError(MAINTENANCE_MESSAGE)
        return view(*args, **kwargs)

    return wrapper


def parse_body(model: Type[M], force: bool = False) -> M:
    """Validate the JSON body against a model.

    Args:
        model: Pydantic model to validate with
        force: Parse the body as JSON whatever its content type (beacons)

    Raises:
        BadRequest: If the body is not a JSON object
        pydantic.ValidationError: If the object does not fit the model
    """
    data = request.get_json(silent=True, force=force)
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object")
    return model.model_validate(data)


def dump(model: BaseModel) -> dict:
    return model.model_dump(mode="json", by_alias=True)
