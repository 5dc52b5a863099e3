"""Runtime settings loaded from the environment (and ``.env`` via python-dotenv)."""

import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping

from ghapp.errors import ConfigError
from ghapp.github.signature import SUPPORTED_ALGORITHMS

GITHUB_API = "https://api.github.com"
DEFAULT_PRIVATE_KEY_PATH = "./private-key.pem"

# GitHub rejects app JWTs that live longer than 10 minutes.
MAX_JWT_LIFETIME = 600


def _int_env(environ: Mapping[str, str], name: str, default: int | None) -> int | None:
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _read_private_key(environ: Mapping[str, str]) -> str:
    inline = environ.get("GITHUB_PRIVATE_KEY", "").strip()
    if inline:
        return inline.replace("\\n", "\n")

    path = environ.get("GITHUB_PRIVATE_KEY_PATH", "").strip()
    if not path:
        if not os.path.isfile(DEFAULT_PRIVATE_KEY_PATH):
            return ""
        path = DEFAULT_PRIVATE_KEY_PATH
    try:
        with open(path) as f:
            return f.read()
    except OSError as exc:
        raise ConfigError(f"GITHUB_PRIVATE_KEY_PATH (cannot read {path}: {exc})") from exc


@dataclass(frozen=True, repr=False)
class Settings:
    app_id: int | None = None
    private_key: str = ""
    webhook_secret: str = ""
    api_url: str = GITHUB_API
    signature_algorithm: str = "sha256"
    refresh_margin: timedelta = timedelta(seconds=30)
    jwt_clock_skew: timedelta = timedelta(seconds=60)
    jwt_lifetime: timedelta = timedelta(seconds=MAX_JWT_LIFETIME)
    log_level: str = "INFO"

    def __post_init__(self):
        if self.signature_algorithm not in SUPPORTED_ALGORITHMS:
            raise ConfigError(
                f"GITHUB_SIGNATURE_ALGORITHM must be one of {sorted(SUPPORTED_ALGORITHMS)}"
            )
        lifetime = self.jwt_lifetime.total_seconds()
        if not 0 < lifetime <= MAX_JWT_LIFETIME:
            raise ConfigError(f"JWT_LIFETIME must be between 1 and {MAX_JWT_LIFETIME} seconds")
        if self.refresh_margin.total_seconds() < 0 or self.jwt_clock_skew.total_seconds() < 0:
            raise ConfigError("TOKEN_REFRESH_MARGIN and JWT_CLOCK_SKEW must not be negative")
        # getLevelName maps known names to their numeric level
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ConfigError(f"LOG_LEVEL {self.log_level!r} is not a logging level name")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        environ = os.environ if environ is None else environ
        return cls(
            app_id=_int_env(environ, "GITHUB_APP_ID", None),
            private_key=_read_private_key(environ),
            webhook_secret=environ.get("GITHUB_WEBHOOK_SECRET", ""),
            api_url=environ.get("GITHUB_API_URL", GITHUB_API).rstrip("/"),
            signature_algorithm=environ.get("GITHUB_SIGNATURE_ALGORITHM", "sha256").strip().lower(),
            refresh_margin=timedelta(seconds=_int_env(environ, "TOKEN_REFRESH_MARGIN", 30)),
            jwt_clock_skew=timedelta(seconds=_int_env(environ, "JWT_CLOCK_SKEW", 60)),
            jwt_lifetime=timedelta(seconds=_int_env(environ, "JWT_LIFETIME", MAX_JWT_LIFETIME)),
            log_level=environ.get("LOG_LEVEL", "INFO").upper(),
        )

    def missing_app_credentials(self) -> list[str]:
        """Names of the variables needed for outbound auth that are unset."""
        missing = []
        if self.app_id is None:
            missing.append("GITHUB_APP_ID")
        if not self.private_key:
            missing.append("GITHUB_PRIVATE_KEY / GITHUB_PRIVATE_KEY_PATH")
        return missing

    def __repr__(self) -> str:
        return (
            f"Settings(app_id={self.app_id!r}, api_url={self.api_url!r}, "
            f"signature_algorithm={self.signature_algorithm!r}, log_level={self.log_level!r})"
        )
