"""JWT verification for API requests.

Tokens are HS256 JWTs whose payload carries the caller's ``id``, ``role``
and ``username``. Issuing tokens is a development convenience used by the
CLI and tests.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt

from ..config import Config, get_config
from ..db.schemas import UserRole

AUTH_REQUIRED = "Authentication required. Please provide a valid Bearer token."
TOKEN_EXPIRED = "Token has expired. Please log in again."
TOKEN_INVALID = "Invalid token format."


class AuthError(Exception):
    """Raised when a request cannot be authenticated."""

    pass


@dataclass
class CurrentUser:
    """The authenticated caller."""

    id: int
    role: str
    username: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT.value


def create_access_token(
    user_id: int,
    role: str,
    username: str = "",
    expires_delta: Optional[timedelta] = None,
    config: Optional[Config] = None,
) -> str:
    """Issue a signed token for a user."""
    config = config or get_config()
    if expires_delta is None:
        expires_delta = timedelta(minutes=config.token_expire_minutes)

    payload = {
        "id": user_id,
        "role": getattr(role, "value", role),
        "username": username,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)


def decode_access_token(token: Optional[str], config: Optional[Config] = None) -> CurrentUser:
    """Verify a token and return the caller it names.

    Raises:
        AuthError: If the token is missing, expired, malformed or incomplete
    """
    if not token:
        raise AuthError(AUTH_REQUIRED)

    config = config or get_config()
    try:
        payload = jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except ExpiredSignatureError:
        raise AuthError(TOKEN_EXPIRED)
    except JWTError:
        raise AuthError(TOKEN_INVALID)

    user_id = payload.get("id")
    role = payload.get("role")
    if user_id is None or role not in {r.value for r in UserRole}:
        raise AuthError(TOKEN_INVALID)

    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise AuthError(TOKEN_INVALID)

    return CurrentUser(id=user_id, role=role, username=payload.get("username") or "")
