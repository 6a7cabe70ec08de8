"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for SessionGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): field names map to env var names
      (e.g. action_token_secret -> ACTION_TOKEN_SECRET). Type coercion and
      validation are built in.

  @model_validator(mode="after"): cross-field validation once every field is
      resolved. Dev mode generates a missing action-token secret with a
      warning; production mode refuses to start without one.

Key material:
  Session tokens are always RS256 and need JWT_PRIVATE_KEY_PATH and
  JWT_PUBLIC_KEY_PATH. Action tokens default to HS256 over
  ACTION_TOKEN_SECRET; with ACTION_TOKEN_ALGORITHM=RS256 they use a second
  key pair that must not be the session pair.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sessiongate.config")

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DEFAULT_DB_URL = f"sqlite:///{_PROJECT_ROOT / 'sessiongate.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. Key files are only read by
    auth.keys at startup, so their paths are not checked here.
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
    # Prefix for links embedded in verification and reset emails.
    base_url: str = "http://localhost:8000"
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Session tokens (RS256)
    # ------------------------------------------------------------------

    jwt_private_key_path: str = "keys/private.pem"
    jwt_public_key_path: str = "keys/public.pem"
    session_token_expire_seconds: int = 3600

    # ------------------------------------------------------------------
    # Action tokens (email verification, password reset)
    # ------------------------------------------------------------------

    action_token_algorithm: Literal["HS256", "RS256"] = "HS256"
    # Empty string is the sentinel for "not configured".
    action_token_secret: str = ""
    action_private_key_path: str = ""
    action_public_key_path: str = ""
    action_token_expire_seconds: int = 3600

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    default_role: str = "user"
    seed_roles: list[str] = ["user", "admin"]

    # Revoke every live session of an identity once its password is reset
    # through an emailed link.
    revoke_sessions_on_password_reset: bool = True

    # ------------------------------------------------------------------
    # Mail (empty host means "log instead of send")
    # ------------------------------------------------------------------

    mail_host: str = ""
    mail_port: int = 465
    mail_username: str = ""
    mail_password: str = ""
    mail_from: str = ""
    mail_use_ssl: bool = True
    mail_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Password hashing
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_token_settings(self) -> "Settings":
        """Enforce token configuration policy at startup.

        HS256 action tokens: a missing secret is generated in dev mode and is
        fatal in production. Secrets shorter than 32 characters are rejected.

        RS256 action tokens: both key paths are required and must differ from
        the session key paths, so the two token families never share keys.
        """
        if self.session_token_expire_seconds <= 0 or self.action_token_expire_seconds <= 0:
            raise ValueError("Token lifetimes must be positive.")

        if self.action_token_algorithm == "HS256":
            if not self.action_token_secret:
                if self.debug:
                    self.action_token_secret = secrets.token_hex(32)
                    logger.warning(
                        "WARNING: Using auto-generated ACTION_TOKEN_SECRET. "
                        "Verification and reset links will not survive restarts."
                    )
                else:
                    raise ValueError(
                        "ACTION_TOKEN_SECRET is required in production mode. "
                        "Set ACTION_TOKEN_SECRET in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
            if len(self.action_token_secret) < 32:
                raise ValueError("ACTION_TOKEN_SECRET must be at least 32 characters.")
        else:
            if not self.action_private_key_path or not self.action_public_key_path:
                raise ValueError(
                    "ACTION_PRIVATE_KEY_PATH and ACTION_PUBLIC_KEY_PATH are required "
                    "when ACTION_TOKEN_ALGORITHM=RS256."
                )
            session_paths = {self.jwt_private_key_path, self.jwt_public_key_path}
            if {self.action_private_key_path, self.action_public_key_path} & session_paths:
                raise ValueError("Action tokens must not reuse the session key pair.")
        return self

    @property
    def mail_sender(self) -> str:
        return self.mail_from or self.mail_username


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
