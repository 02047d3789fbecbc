"""
core/config.py -- Admin panel settings, loaded once from the environment.

Every environment read in the service goes through Settings. Modules never
touch os.environ; the lifespan in api/main.py receives one Settings instance
and hands the values to what it builds (TokenCodec, stores, recorder).

How values resolve:
  Settings is a pydantic-settings BaseSettings. Each field is looked up as the
      upper-cased env var of the same name (token_expire_seconds ->
      TOKEN_EXPIRE_SECONDS), then in an optional .env file, then falls back to
      the default below. List fields such as ALLOWED_HOSTS take JSON.

  get_settings() is wrapped in lru_cache, so the first call fixes the
      configuration for the life of the process.

Signing key policy (enforced by check_signing_key):
  DEBUG=true with no SECRET_KEY: a random key is generated and a warning
      logged. Tokens die with the process, which is fine for local work.
  DEBUG off with no SECRET_KEY: startup fails. A silent random key in
      production would log every admin out on each deploy.
  Any SECRET_KEY under 32 characters is refused; HS256 is only as strong as
      its key.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or audit/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("adminpanel.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'adminpanel.db'}"
_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Runtime configuration for the admin panel API and CLI.

    Every field has a default, so tests can build Settings(...) directly with
    keyword overrides and no .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Runtime
    # ------------------------------------------------------------------

    debug: bool = False
    # "" means unset; check_signing_key replaces it or refuses to start.
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Tokens and login
    # ------------------------------------------------------------------

    token_expire_seconds: int = 24 * 60 * 60
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    frontend_url: str = "http://localhost:3000"
    allowed_hosts: list[str] = ["*"]
    # Only honour X-Forwarded-For when a reverse proxy we control sets it.
    trust_proxy: bool = False

    # ------------------------------------------------------------------
    # First-run account
    # ------------------------------------------------------------------

    default_admin_email: str = "admin@example.com"
    default_admin_password: str = "admin123"

    @model_validator(mode="after")
    def check_signing_key(self) -> "Settings":
        """Apply the signing key policy from the module docstring, and require a positive token TTL."""
        if not self.secret_key:
            if not self.debug:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Export SECRET_KEY (32+ characters) or add it to .env; "
                    "set DEBUG=true for local development."
                )
            self.secret_key = secrets.token_hex(_MIN_SECRET_LENGTH)
            logger.warning("SECRET_KEY not set; generated a throwaway key. Issued tokens die with this process.")
        if len(self.secret_key) < _MIN_SECRET_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {_MIN_SECRET_LENGTH} characters.")
        if self.token_expire_seconds <= 0:
            raise ValueError("TOKEN_EXPIRE_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Process-wide Settings, built on first use.

    Tests that change environment variables must call
    get_settings.cache_clear() before and after.
    """
    return Settings()
