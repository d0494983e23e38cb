"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for SessionGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() at
startup and pass the Settings instance to whatever needs it.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. access_secret -> ACCESS_SECRET).

  @model_validator(mode="after"): Cross-field validation once every field is
      resolved. Dev mode generates missing signing secrets with a warning,
      production mode refuses to start without them.

Security notes:
  [S1] Secrets shorter than 32 chars are rejected outright. HS256 signing
       relies on key entropy -- a short key weakens every token.

  [S2] ACCESS_SECRET and REFRESH_SECRET must differ. Separate secrets are what
       keep an access token from validating as a refresh token and vice versa.

  [S3] Both TTLs are parsed at startup so a typo fails the boot, not the
       first login.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import re
import secrets
from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sessiongate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'sessiongate.db'}"

_MIN_SECRET_LENGTH = 32

# One or more <number><unit> groups, e.g. "15m", "1h30m", "1.5h", "500ms".
_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}

DEFAULT_TTL = timedelta(minutes=15)


def parse_ttl(expr: str) -> timedelta:
    """Parse a token lifetime expression.

    Accepted forms:
      ""              -> 15 minutes
      "30s" "15m" "1h" "1h30m" "500ms"  -> duration expression
      "20"            -> bare integer, interpreted as minutes

    Raises ValueError for anything else, or for a lifetime that is not
    strictly positive.
    """
    expr = expr.strip()
    if not expr:
        return DEFAULT_TTL

    if expr.isdigit():
        ttl = timedelta(minutes=int(expr))
    else:
        pos = 0
        seconds = 0.0
        for match in _DURATION_RE.finditer(expr):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
            pos = match.end()
        if pos == 0 or pos != len(expr):
            raise ValueError(f"invalid TTL expression: {expr!r}")
        ttl = timedelta(seconds=seconds)

    if ttl <= timedelta(0):
        raise ValueError(f"TTL must be positive: {expr!r}")
    return ttl


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in tests with
    explicit keyword arguments (Settings(access_secret=..., ...)) instead of
    touching the environment.
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

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # either generates a dev secret or raises, so callers never see "".
    access_secret: str = ""
    access_ttl: str = "15m"
    refresh_secret: str = ""
    refresh_ttl: str = "168h"

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    # Upper bound on waiting for a connection or a write lock. A timeout
    # surfaces as a 500; this layer never retries.
    db_timeout_seconds: float = 5.0
    # How often the background task deletes expired refresh-token rows.
    purge_interval_seconds: int = 3600

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_token_settings(self) -> "Settings":
        """Enforce the signing-secret and TTL policy [S1][S2][S3].

        Dev mode (DEBUG=true): missing secrets are generated with a warning.
            Sessions will not survive a restart -- acceptable for local dev.

        Production mode: a missing secret is a hard startup failure.
        """
        for name in ("access_secret", "refresh_secret"):
            value = getattr(self, name)
            if not value:
                if self.debug:
                    setattr(self, name, secrets.token_hex(32))
                    logger.warning(
                        "Using auto-generated %s. Sessions will not persist across restarts.", name.upper()
                    )
                else:
                    raise ValueError(
                        f"{name.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
            if len(getattr(self, name)) < _MIN_SECRET_LENGTH:
                raise ValueError(f"{name.upper()} must be at least {_MIN_SECRET_LENGTH} characters.")
        if self.access_secret == self.refresh_secret:
            raise ValueError("ACCESS_SECRET and REFRESH_SECRET must differ.")
        parse_ttl(self.access_ttl)
        parse_ttl(self.refresh_ttl)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Called once by the lifespan (and the CLI); the result is passed into the
    session manager and stored on app.state. In tests, construct Settings()
    directly or call get_settings.cache_clear() after changing the environment.
    """
    return Settings()
