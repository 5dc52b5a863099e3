import asyncio
import logging
from typing import TYPE_CHECKING, Any

import httpx

from ghapp.github.auth import API_VERSION, InstallationToken

if TYPE_CHECKING:
    from ghapp.github.pool import ClientPool

logger = logging.getLogger(__name__)

USER_AGENT = "ghapp/0.1.0"

_MAX_RETRIES = 3
_RETRY_BACKOFF = 1.0  # seconds, doubled each retry


def _headers(token: str) -> dict:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": API_VERSION,
        "User-Agent": USER_AGENT,
    }


class AuthenticatedClient:
    """REST client acting as one installation of the app."""

    def __init__(
        self,
        pool: "ClientPool",
        installation_id: int,
        token: InstallationToken,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._pool = pool
        self.installation_id = installation_id
        self.token = token
        self._transport = transport

    def __repr__(self) -> str:
        return f"AuthenticatedClient(installation_id={self.installation_id!r})"

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict | None = None,
    ) -> httpx.Response:
        """Make an authenticated request, retrying transient 5xx and transport errors."""
        url = path if path.startswith("http") else f"{self._pool.api_url}/{path.lstrip('/')}"
        last_exc = None
        for attempt in range(_MAX_RETRIES):
            # re-resolve per attempt; the cache answers without a network call while valid
            self.token = await self._pool.token_for(self.installation_id)
            try:
                async with httpx.AsyncClient(transport=self._transport) as client:
                    response = await client.request(
                        method, url, headers=_headers(self.token.token), json=json, params=params,
                    )
                    if response.status_code < 500:
                        response.raise_for_status()
                        return response
                    logger.warning(
                        "GitHub API %s (attempt %d/%d): %s %s",
                        response.status_code, attempt + 1, _MAX_RETRIES, method, url,
                    )
                    last_exc = httpx.HTTPStatusError(
                        f"{response.status_code}", request=response.request, response=response,
                    )
            except httpx.TransportError as exc:
                logger.warning("Transport error (attempt %d/%d): %s", attempt + 1, _MAX_RETRIES, exc)
                last_exc = exc

            if attempt < _MAX_RETRIES - 1:
                await asyncio.sleep(_RETRY_BACKOFF * (2 ** attempt))

        raise last_exc

    async def get(self, path: str, params: dict | None = None) -> httpx.Response:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> httpx.Response:
        return await self.request("POST", path, json=json)

    async def patch(self, path: str, json: Any = None) -> httpx.Response:
        return await self.request("PATCH", path, json=json)

    async def delete(self, path: str) -> httpx.Response:
        return await self.request("DELETE", path)

    async def delete_ref(self, owner: str, repo: str, ref: str) -> None:
        """Delete a git reference such as ``heads/feature-x``."""
        await self.delete(f"/repos/{owner}/{repo}/git/refs/{ref}")
