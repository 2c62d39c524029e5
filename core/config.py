"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Gatehouse happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Each signing secret follows the same rule: dev mode generates
      a key with a warning, production mode refuses to start without one.

Security notes:
  Access, refresh and reset tokens are signed with three separate secrets so
  a leaked or replayed token of one kind can never validate as another.
  Secrets shorter than 32 chars are rejected outright.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/ or directory/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gatehouse.config")

_SIGNING_KEYS = ("secret_key", "refresh_secret_key", "reset_secret_key")


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
    environment: Literal["development", "production"] = "development"
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    refresh_secret_key: str = ""
    reset_secret_key: str = ""

    database_url: str = "sqlite:///gatehouse.db"

    # ------------------------------------------------------------------
    # Tokens and passwords
    # ------------------------------------------------------------------

    access_token_expire_seconds: int = 15 * 60
    refresh_token_expire_seconds: int = 7 * 24 * 3600
    reset_token_expire_seconds: int = 3600
    email_verification_expire_seconds: int = 24 * 3600
    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    # Frontend origin used to build verification and reset links.
    client_url: str = "http://localhost:3000"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5000"]
    allowed_hosts: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"
    submit_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Email
    #
    # The primary transport is used when SMTP_HOST is set. The fallback
    # transport (FALLBACK_SMTP_HOST) is tried for the same message when the
    # primary fails. With neither configured, mail is written to the log.
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_ssl: bool = False
    smtp_timeout: int = 30

    fallback_smtp_host: str = ""
    fallback_smtp_port: int = 587
    fallback_smtp_username: str = ""
    fallback_smtp_password: str = ""

    mail_from: str = '"Gatehouse" <no-reply@gatehouse.local>'
    contact_email: str = "contact@gatehouse.local"

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_signing_keys(self) -> "Settings":
        """Enforce the signing-secret policy for every token kind.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if a key is
            missing, since every restart would silently log everyone out.

        Both modes: reject keys shorter than 32 characters.
        """
        for name in _SIGNING_KEYS:
            value = getattr(self, name)
            if not value:
                if not self.debug:
                    raise ValueError(
                        f"{name.upper()} is required in production mode. "
                        f"Set {name.upper()} in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
                value = secrets.token_hex(32)
                setattr(self, name, value)
                logger.warning("Using auto-generated %s. Tokens will not persist across restarts.", name.upper())
            if len(value) < 32:
                raise ValueError(f"{name.upper()} must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
