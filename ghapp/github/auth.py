"""GitHub App authentication: app JWTs and the installation token exchange."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import httpx
import jwt

from ghapp.config import GITHUB_API, MAX_JWT_LIFETIME
from ghapp.errors import ExchangeError, SigningError

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse GitHub's ISO-8601 timestamps (``2024-01-01T00:00:00Z``) as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True, repr=False)
class AppIdentity:
    app_id: int
    private_key: str

    @classmethod
    def from_pem_file(cls, app_id: int, path: str) -> "AppIdentity":
        with open(path) as f:
            return cls(app_id=app_id, private_key=f.read())

    def __repr__(self) -> str:
        return f"AppIdentity(app_id={self.app_id!r})"


@dataclass(frozen=True, repr=False)
class AppJwt:
    token: str
    issued_at: datetime
    expires_at: datetime

    def remaining(self, now: datetime) -> timedelta:
        return self.expires_at - now

    def __repr__(self) -> str:
        return f"AppJwt(issued_at={self.issued_at!r}, expires_at={self.expires_at!r})"


@dataclass(frozen=True, repr=False)
class InstallationToken:
    installation_id: int
    token: str
    expires_at: datetime

    def remaining(self, now: datetime) -> timedelta:
        return self.expires_at - now

    def __repr__(self) -> str:
        return f"InstallationToken(installation_id={self.installation_id!r}, expires_at={self.expires_at!r})"


class JwtMinter:
    """Signs short-lived RS256 JWTs asserting the app's identity."""

    def __init__(
        self,
        identity: AppIdentity,
        lifetime: timedelta = timedelta(seconds=MAX_JWT_LIFETIME),
        clock_skew: timedelta = timedelta(seconds=60),
        reuse_margin: timedelta = timedelta(seconds=30),
        clock: Callable[[], datetime] = utcnow,
    ):
        if lifetime.total_seconds() > MAX_JWT_LIFETIME:
            raise ValueError(f"App JWT lifetime cannot exceed {MAX_JWT_LIFETIME}s")
        self._identity = identity
        self._lifetime = lifetime
        self._clock_skew = clock_skew
        self._reuse_margin = reuse_margin
        self._clock = clock
        self._current: AppJwt | None = None

    @property
    def app_id(self) -> int:
        return self._identity.app_id

    def mint(self, now: datetime | None = None) -> AppJwt:
        now = now or self._clock()
        issued_at = now - self._clock_skew
        expires_at = now + self._lifetime
        payload = {
            "iat": int(issued_at.timestamp()),  # backdated to cover clock drift
            "exp": int(expires_at.timestamp()),
            "iss": str(self._identity.app_id),
        }
        try:
            token = jwt.encode(payload, self._identity.private_key, algorithm="RS256")
        except (jwt.PyJWTError, ValueError, TypeError, AttributeError) as exc:
            raise SigningError(f"Failed to sign app JWT for app {self._identity.app_id}: {exc}") from exc

        self._current = AppJwt(token=token, issued_at=issued_at, expires_at=expires_at)
        logger.debug("Minted app JWT for app %s (expires %s)", self._identity.app_id, expires_at)
        return self._current

    def current(self, now: datetime | None = None) -> AppJwt:
        """Return the last minted JWT while it has more than the reuse margin left."""
        now = now or self._clock()
        cached = self._current
        if cached and cached.remaining(now) > self._reuse_margin:
            return cached
        return self.mint(now)


def _headers(app_jwt: str) -> dict:
    return {
        "Authorization": f"Bearer {app_jwt}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": API_VERSION,
    }


async def exchange_installation_token(
    installation_id: int,
    app_jwt: str,
    api_url: str = GITHUB_API,
    client: httpx.AsyncClient | None = None,
) -> InstallationToken:
    """Exchange a GitHub App JWT for an installation access token."""
    url = f"{api_url}/app/installations/{installation_id}/access_tokens"
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=30.0) as own_client:
                response = await own_client.post(url, headers=_headers(app_jwt))
        else:
            response = await client.post(url, headers=_headers(app_jwt))
    except httpx.TransportError as exc:
        raise ExchangeError(f"Transport error exchanging token for installation {installation_id}: {exc}") from exc

    if not response.is_success:
        raise ExchangeError(
            f"GitHub returned {response.status_code} for installation {installation_id} token",
            status_code=response.status_code,
        )

    try:
        data = response.json()
        token = data["token"]
        expires_at = parse_timestamp(data["expires_at"])
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        raise ExchangeError(
            f"Malformed token response for installation {installation_id}: {exc}",
            status_code=response.status_code,
        ) from exc

    return InstallationToken(installation_id=installation_id, token=token, expires_at=expires_at)
