"""Per-installation access token cache with single-flight refresh."""

import asyncio
import concurrent.futures
import logging
import threading
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from ghapp.github.auth import InstallationToken, JwtMinter, utcnow

logger = logging.getLogger(__name__)

TokenExchange = Callable[[int, str], Awaitable[InstallationToken]]


class InstallationTokenCache:
    """
    Maps installation ids to access tokens, refreshing lazily.

    A token is served from the cache while more than *refresh_margin* of its
    lifetime remains. Past that, the first caller starts a refresh for the
    installation and every concurrent caller for the same id waits on it, so
    there is at most one exchange call in flight per id. The refresh result
    (or exception) is shared by everyone waiting on it; a failure is not
    cached and the next call starts a new round.

    Safe to share between event loops and threads. The refresh runs on the
    loop of the caller that started it; callers on other loops wait on the
    same ``concurrent.futures.Future``.
    """

    def __init__(
        self,
        minter: JwtMinter,
        exchange: TokenExchange,
        refresh_margin: timedelta = timedelta(seconds=30),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._minter = minter
        self._exchange = exchange
        self._refresh_margin = refresh_margin
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens: dict[int, InstallationToken] = {}
        self._inflight: dict[int, concurrent.futures.Future] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def refresh_margin(self) -> timedelta:
        return self._refresh_margin

    def peek(self, installation_id: int) -> InstallationToken | None:
        with self._lock:
            return self._tokens.get(installation_id)

    def refreshing(self, installation_id: int) -> bool:
        with self._lock:
            return installation_id in self._inflight

    async def token_for(self, installation_id: int, now: datetime | None = None) -> InstallationToken:
        now = now or self._clock()
        with self._lock:
            cached = self._tokens.get(installation_id)
            if cached is not None and cached.remaining(now) > self._refresh_margin:
                logger.debug("Token cache hit for installation %s", installation_id)
                return cached

            future = self._inflight.get(installation_id)
            started = future is None
            if started:
                future = concurrent.futures.Future()
                self._inflight[installation_id] = future

        if started:
            task = asyncio.ensure_future(self._refresh(installation_id, now, future))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            logger.debug("Joining in-flight refresh for installation %s", installation_id)

        # shield: a cancelled caller must not cancel the refresh other callers share
        return await asyncio.shield(asyncio.wrap_future(future))

    async def _refresh(self, installation_id: int, now: datetime, future: concurrent.futures.Future) -> None:
        try:
            app_jwt = self._minter.current(now)
            token = await self._exchange(installation_id, app_jwt.token)
        except asyncio.CancelledError:
            self._settle(installation_id)
            future.cancel()
            raise
        except Exception as exc:
            self._settle(installation_id)
            logger.warning("Installation token refresh failed for installation=%s: %s", installation_id, exc)
            future.set_exception(exc)
            return

        self._settle(installation_id, token)
        logger.info(
            "Refreshed installation token for installation=%s (expires %s)",
            installation_id, token.expires_at,
        )
        future.set_result(token)

    def _settle(self, installation_id: int, token: InstallationToken | None = None) -> None:
        # runs before the future is resolved, so woken waiters see the new entry
        with self._lock:
            if token is not None:
                self._tokens[installation_id] = token
            self._inflight.pop(installation_id, None)
