"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for RadarOne happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. pii_encryption_key -> PII_ENCRYPTION_KEY).

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Used for the DEBUG-conditional SECRET_KEY
      logic: dev mode generates a key with warning, production mode refuses to
      start without one.

PII_ENCRYPTION_KEY is NOT validated here. The encryption key is checked the
first time something is sealed or opened (see core/crypto.get_secret_box), so
the API can start and serve health checks on a host where the key has not been
provisioned yet, and every crypto call site still fails closed.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
pii/, or sessions/.
"""

import logging
import secrets
from datetime import datetime, timezone
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("radarone.config")


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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Encryption
    # ------------------------------------------------------------------

    # 64 hex characters (32 bytes). Shared by CPF encryption and the session
    # credential store. Validated lazily by core.crypto.get_secret_box().
    pii_encryption_key: str = ""

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = 3600

    # ------------------------------------------------------------------
    # External sessions
    # ------------------------------------------------------------------

    # Policy default for ExternalSessionRecord.expires_at when the upload
    # carries no hint.
    session_ttl_days: int = 30
    max_upload_bytes: int = 1 * 1024 * 1024

    # ------------------------------------------------------------------
    # Storage (empty string = SQLite file next to the store module)
    # ------------------------------------------------------------------

    auth_database_url: str = ""
    sessions_database_url: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
        Production mode: refuse to start if SECRET_KEY is missing.
        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Login sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()


def now_iso() -> str:
    """Current UTC time as an ISO 8601 string -- the timestamp format of every store."""
    return datetime.now(timezone.utc).isoformat()
