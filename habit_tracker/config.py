"""
Centralized configuration for the Habit Tracker backend.
All settings come from environment variables for 12-factor deployment.

``load_settings()`` reads the environment once and returns an immutable
``Settings``; the application factory takes that object instead of
reading ``os.environ`` itself.
"""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv


DEFAULT_PORT = 5000
DEFAULT_FRONTEND_URL = "http://localhost:5173"
DEFAULT_ENVIRONMENT = "development"


class ConfigError(ValueError):
    """Raised when the environment describes an unusable configuration."""


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    val = env.get(name)
    if val is None or not val.strip():
        return default
    try:
        return int(val.strip())
    except ValueError:
        return default


def _env_str(env: Mapping[str, str], name: str, default: str) -> str:
    val = env.get(name)
    if val is None or not val.strip():
        return default
    return val.strip()


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read once at startup."""

    port: int = DEFAULT_PORT
    frontend_url: str = DEFAULT_FRONTEND_URL
    environment: str = DEFAULT_ENVIRONMENT
    host: str = "0.0.0.0"

    # Persistence
    database_url: str = "sqlite:///habit_tracker.db"

    # Static roots
    upload_dir: str = "uploads"
    music_dir: str = "music"

    # Auth
    auth_secret: str = field(default_factory=lambda: secrets.token_hex(32), repr=False)
    session_ttl_seconds: int = 7 * 24 * 3600
    max_upload_bytes: int = 2 * 1024 * 1024

    log_level: str = "INFO"

    def __post_init__(self) -> None:
        # A credentialed CORS policy cannot use a wildcard origin.
        if self.frontend_url.strip() == "*":
            raise ConfigError(
                "FRONTEND_URL must name a single origin; '*' is not allowed "
                "with credentialed cross-origin requests."
            )

    @property
    def cors_origins(self) -> list:
        return [self.frontend_url]

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


def load_environment(dotenv_path: Optional[str] = None) -> None:
    """Load a ``.env`` file into the process environment.

    Variables already set in the environment win over the file.
    """
    load_dotenv(dotenv_path=dotenv_path, override=False)


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build ``Settings`` from ``environ`` (defaults to ``os.environ``)."""
    env = os.environ if environ is None else environ

    environment = _env_str(
        env, "NODE_ENV", _env_str(env, "APP_ENV", DEFAULT_ENVIRONMENT)
    )
    frontend_url = _env_str(env, "FRONTEND_URL", DEFAULT_FRONTEND_URL)
    if frontend_url != "*":
        frontend_url = frontend_url.rstrip("/")

    kwargs = {}
    secret = _env_str(env, "AUTH_SECRET", "")
    if secret:
        kwargs["auth_secret"] = secret

    return Settings(
        port=_env_int(env, "PORT", DEFAULT_PORT),
        frontend_url=frontend_url,
        environment=environment,
        host=_env_str(env, "HOST", "0.0.0.0"),
        database_url=_env_str(env, "DATABASE_URL", "sqlite:///habit_tracker.db"),
        upload_dir=_env_str(env, "UPLOAD_DIR", "uploads"),
        music_dir=_env_str(env, "MUSIC_DIR", "music"),
        session_ttl_seconds=_env_int(env, "SESSION_TTL_SECONDS", 7 * 24 * 3600),
        max_upload_bytes=_env_int(env, "MAX_UPLOAD_BYTES", 2 * 1024 * 1024),
        log_level=_env_str(env, "LOG_LEVEL", "INFO").upper(),
        **kwargs,
    )
