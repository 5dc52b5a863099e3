"""Hands out authenticated GitHub clients per installation."""

import functools
from datetime import datetime, timedelta
from typing import Callable

import httpx

from ghapp.config import GITHUB_API, MAX_JWT_LIFETIME, Settings
from ghapp.errors import ConfigError
from ghapp.github.auth import (
    AppIdentity,
    AppJwt,
    InstallationToken,
    JwtMinter,
    exchange_installation_token,
    utcnow,
)
from ghapp.github.client import AuthenticatedClient
from ghapp.github.tokens import InstallationTokenCache, TokenExchange


class ClientPool:
    """
    The outbound entry point: one pool per app, shared by every request handler.

    Holds the app identity (through its JwtMinter) and the installation token
    cache. Clients it returns re-resolve their token through the pool on each
    request, so holding on to one is safe.
    """

    def __init__(
        self,
        identity: AppIdentity,
        api_url: str = GITHUB_API,
        refresh_margin: timedelta = timedelta(seconds=30),
        jwt_lifetime: timedelta = timedelta(seconds=MAX_JWT_LIFETIME),
        clock_skew: timedelta = timedelta(seconds=60),
        exchange: TokenExchange | None = None,
        clock: Callable[[], datetime] = utcnow,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self._transport = transport
        self._minter = JwtMinter(identity, lifetime=jwt_lifetime, clock_skew=clock_skew, clock=clock)
        if exchange is None:
            exchange = functools.partial(_exchange, api_url=self.api_url, transport=transport)
        self._cache = InstallationTokenCache(
            self._minter, exchange, refresh_margin=refresh_margin, clock=clock,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "ClientPool":
        missing = settings.missing_app_credentials()
        if missing:
            raise ConfigError(f"Missing config: {', '.join(missing)}")
        return cls(
            AppIdentity(app_id=settings.app_id, private_key=settings.private_key),
            api_url=settings.api_url,
            refresh_margin=settings.refresh_margin,
            jwt_lifetime=settings.jwt_lifetime,
            clock_skew=settings.jwt_clock_skew,
            **kwargs,
        )

    @property
    def app_id(self) -> int:
        return self._minter.app_id

    @property
    def cache(self) -> InstallationTokenCache:
        return self._cache

    def app_jwt(self) -> AppJwt:
        """Bearer token for app-level endpoints (``/app/...``)."""
        return self._minter.current()

    async def token_for(self, installation_id: int) -> InstallationToken:
        return await self._cache.token_for(installation_id)

    async def for_installation(self, installation_id: int) -> AuthenticatedClient:
        token = await self._cache.token_for(installation_id)
        return AuthenticatedClient(self, installation_id, token, transport=self._transport)


async def _exchange(
    installation_id: int,
    app_jwt: str,
    api_url: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> InstallationToken:
    async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
        return await exchange_installation_token(installation_id, app_jwt, api_url=api_url, client=client)
