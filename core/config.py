"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for SessionGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. idle_timeout_seconds -> IDLE_TIMEOUT_SECONDS). Type coercion and
      validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Used to keep the session lifetimes coherent: the idle
      window can never outlast the absolute lifetime.

Security notes:
  [S1] SESSION_TOKEN_BYTES below 16 is rejected. Session tokens are bearer
       credentials and store keys at the same time -- 128 bits is the floor.

  [S2] SECURE_COOKIES must be true when serving over TLS (production). The
       Secure attribute is only appended to the session cookie when it is set.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sessiongate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'sessiongate.db'}"

_DAY = 24 * 60 * 60


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    # JSON lists in the environment, e.g. ALLOWED_HOSTS='["blog.example.com"]'
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False  # [S2]
    session_ttl_seconds: int = 30 * _DAY  # absolute lifetime
    idle_timeout_seconds: int = 7 * _DAY  # sliding inactivity window
    # Cap the refreshed idle deadline at the absolute deadline.
    clamp_idle_to_absolute: bool = True
    session_token_bytes: int = 32
    # Expired rows are normally deleted on first touch; this sweeps the rest.
    purge_interval_seconds: int = 6 * 60 * 60

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    register_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_session_policy(self) -> "Settings":
        """Reject session settings that would break the dual expiry policy.

        The idle deadline is meant to sit inside the absolute deadline. An
        idle timeout longer than the TTL would make the idle check dead code,
        so it is refused at startup rather than silently accepted.
        """
        if self.session_ttl_seconds <= 0 or self.idle_timeout_seconds <= 0:
            raise ValueError("SESSION_TTL_SECONDS and IDLE_TIMEOUT_SECONDS must be positive.")
        if self.idle_timeout_seconds > self.session_ttl_seconds:
            raise ValueError("IDLE_TIMEOUT_SECONDS must not exceed SESSION_TTL_SECONDS.")
        if self.session_token_bytes < 16:  # [S1]
            raise ValueError("SESSION_TOKEN_BYTES must be at least 16.")
        if not self.secure_cookies and not self.debug:
            logger.warning("SECURE_COOKIES is off -- session cookies will be sent over plain HTTP.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
