"""API blueprints."""

from .books import bp as books_bp
from .progress import bp as progress_bp
from .sessions import bp as sessions_bp
from .system import bp as system_bp
from .users import bp as users_bp

BLUEPRINTS = [sessions_bp, progress_bp, books_bp, system_bp, users_bp]

__all__ = ["BLUEPRINTS"]
