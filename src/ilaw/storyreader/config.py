"""Configuration management for storyreader.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

DEV_JWT_SECRET = "ilaw_ng_bayan_dev_secret_key_2024"


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path

    # Auth
    jwt_secret: str
    jwt_algorithm: str
    token_expire_minutes: int

    # Reading sessions
    session_max_seconds: int  # orphan TTL
    reap_interval_seconds: int  # how often the server sweeps for orphans
    flip_seconds: float  # navigation debounce

    # System settings cache
    settings_cache_ttl: float  # seconds

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])

    # Reader client
    api_url: str = "http://localhost:8000"

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "STORYREADER_DB_PATH",
            str(Path.home() / ".storyreader" / "storyreader.db"),
        )
        db_path = Path(db_path_str) if db_path_str == ":memory:" else Path(db_path_str).expanduser()

        origins = os.environ.get("STORYREADER_CORS_ORIGINS", "http://localhost:3000")

        return cls(
            db_path=db_path,
            jwt_secret=os.environ.get("STORYREADER_JWT_SECRET", DEV_JWT_SECRET),
            jwt_algorithm=os.environ.get("STORYREADER_JWT_ALGORITHM", "HS256"),
            token_expire_minutes=int(os.environ.get("STORYREADER_TOKEN_EXPIRE_MINUTES", "60")),
            session_max_seconds=int(os.environ.get("STORYREADER_SESSION_MAX_SECONDS", "14400")),
            reap_interval_seconds=int(os.environ.get("STORYREADER_REAP_INTERVAL", "600")),
            flip_seconds=float(os.environ.get("STORYREADER_FLIP_SECONDS", "1.25")),
            settings_cache_ttl=float(os.environ.get("STORYREADER_SETTINGS_CACHE_TTL", "30")),
            host=os.environ.get("STORYREADER_HOST", "0.0.0.0"),
            port=int(os.environ.get("STORYREADER_PORT", "8000")),
            debug=_env_bool("STORYREADER_DEBUG", False),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            api_url=os.environ.get("STORYREADER_API_URL", "http://localhost:8000"),
        )

    @property
    def is_memory_db(self) -> bool:
        return str(self.db_path) == ":memory:"

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.jwt_secret == DEV_JWT_SECRET:
            errors.append("STORYREADER_JWT_SECRET is not set; using the development secret")
        elif len(self.jwt_secret) < 32:
            errors.append("STORYREADER_JWT_SECRET is shorter than 32 characters")

        if self.session_max_seconds <= 0:
            errors.append("STORYREADER_SESSION_MAX_SECONDS must be positive")

        if self.reap_interval_seconds <= 0:
            errors.append("STORYREADER_REAP_INTERVAL must be positive")

        if self.flip_seconds < 0:
            errors.append("STORYREADER_FLIP_SECONDS cannot be negative")

        # Check database directory is writable
        if not self.is_memory_db and not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        return errors


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
