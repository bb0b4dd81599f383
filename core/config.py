"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for lotdesk happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Enforces the SECRET_KEY policy and keeps
      page_size within the backing store's per-query cap.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. Session tokens are
  stored as HMAC-SHA256(SECRET_KEY, token), so key entropy matters.

  In production mode (DEBUG not set or false), a missing SECRET_KEY is a hard
  startup failure. A random key would silently invalidate every stored session
  on restart.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or inventory/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("lotdesk.config")


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
    database_url: str = ""  # empty = per-store SQLite file next to the package

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_cookie_name: str = "lotdesk_token"
    session_ttl_seconds: int = 24 * 3600
    remember_me_ttl_seconds: int = 30 * 24 * 3600
    guest_access_enabled: bool = True

    # ------------------------------------------------------------------
    # Backing store
    # ------------------------------------------------------------------

    # The managed store truncates every select at this many rows without
    # signalling it. Anything that needs "all rows" must page.
    store_max_rows: int = 1000
    page_size: int = 1000

    # ------------------------------------------------------------------
    # Login throttling
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    # Login numbers are matched with and without this country calling code.
    login_country_code: str = "91"
    login_fail_threshold: int = 5
    login_fail_threshold_after_lock: int = 3
    login_lock_hours: int = 1
    login_lock_hours_after_lock: int = 2

    # ------------------------------------------------------------------
    # External identity provider (optional -- empty URL disables it)
    # ------------------------------------------------------------------

    identity_provider_url: str = ""
    identity_provider_service_key: str = ""
    identity_provider_timeout: float = 10.0
    identity_email_domain: str = "lotdesk.local"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
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

    @model_validator(mode="after")
    def clamp_page_size(self) -> "Settings":
        """Keep page_size within (0, store_max_rows].

        A page size above the store cap would make every page look "short"
        and end pagination after the first call, silently dropping rows.
        """
        if self.store_max_rows < 1:
            raise ValueError("STORE_MAX_ROWS must be at least 1.")
        if self.page_size < 1 or self.page_size > self.store_max_rows:
            logger.warning(
                "PAGE_SIZE=%d outside 1..%d; clamping to store cap", self.page_size, self.store_max_rows
            )
            self.page_size = self.store_max_rows
        return self

    @property
    def identity_provider_enabled(self) -> bool:
        return bool(self.identity_provider_url and self.identity_provider_service_key)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
