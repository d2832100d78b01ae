from __future__ import annotations

import logging

import httpx

from relay.config import Settings
from relay.errors import SourceFetchError

logger = logging.getLogger(__name__)


class SourceClient:
    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self._http_client = http_client

    async def fetch(self, url: str) -> str:
        if self._http_client is not None:
            return await self._fetch_with(self._http_client, url)

        timeout = httpx.Timeout(self.settings.request_timeout_seconds)
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await self._fetch_with(client, url)

    async def _fetch_with(self, client: httpx.AsyncClient, url: str) -> str:
        headers = {"User-Agent": self.settings.user_agent}
        try:
            response = await client.get(url, headers=headers, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SourceFetchError(
                f"Failed to fetch {url}: {exc.response.status_code} {exc.response.reason_phrase}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceFetchError(f"Failed to fetch {url}: {exc}") from exc

        logger.info("Fetched %s (%s bytes)", url, len(response.content))
        return response.text
