"""Feed sources: fetch a GeoJSON document over HTTP or from a local file.

A fetcher is any ``async () -> dict`` callable. The refresh controller is the
only caller and the only place that awaits one.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import httpx
from loguru import logger

from .errors import FetchFailure


class FeedClient:
    """HTTP GET of a GeoJSON feed, with retries on transport errors and 5xx."""

    def __init__(
        self,
        url: str,
        timeout_s: float = 10.0,
        retries: int = 2,
        backoff_s: float = 0.5,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.timeout_s = timeout_s
        self.retries = retries
        self.backoff_s = backoff_s
        self._client = client

    @classmethod
    def from_config(cls, config, client: httpx.AsyncClient | None = None) -> "FeedClient":
        return cls(
            config.feed_url,
            timeout_s=config.timeout_s,
            retries=config.retries,
            backoff_s=config.backoff_s,
            client=client,
        )

    async def __call__(self) -> dict:
        return await self.fetch()

    async def fetch(self) -> dict:
        """Fetch and decode the feed.

        Returns:
            The decoded JSON document.

        Raises:
            FetchFailure: HTTP error status, exhausted retries, or a body
                that is not JSON.
        """
        if self._client is not None:
            return await self._fetch_with(self._client)
        async with httpx.AsyncClient(timeout=self.timeout_s, follow_redirects=True) as client:
            return await self._fetch_with(client)

    async def _fetch_with(self, client: httpx.AsyncClient) -> dict:
        attempts = self.retries + 1
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                resp = await client.get(self.url, timeout=self.timeout_s)
            except httpx.HTTPError as e:
                last_error = e
                logger.warning(f"Feed request failed ({attempt}/{attempts}): {self.url}: {e}")
            else:
                if resp.status_code >= 500:
                    last_error = FetchFailure(
                        f"HTTP {resp.status_code} from {self.url}", status_code=resp.status_code
                    )
                    logger.warning(f"Feed returned {resp.status_code} ({attempt}/{attempts}): {self.url}")
                elif resp.status_code >= 400:
                    raise FetchFailure(
                        f"HTTP {resp.status_code} from {self.url}", status_code=resp.status_code
                    )
                else:
                    try:
                        return resp.json()
                    except ValueError as e:
                        raise FetchFailure(f"Feed body is not JSON: {self.url}: {e}") from e

            if attempt < attempts:
                await asyncio.sleep(self.backoff_s * attempt)

        if isinstance(last_error, FetchFailure):
            raise last_error
        raise FetchFailure(f"Feed request failed after {attempts} attempts: {last_error}") from last_error


class FileSource:
    """Fetcher that reads a GeoJSON snapshot from disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def __call__(self) -> dict:
        return await self.fetch()

    async def fetch(self) -> dict:
        try:
            text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        except OSError as e:
            raise FetchFailure(f"Cannot read feed snapshot {self.path}: {e}") from e
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise FetchFailure(f"Feed snapshot is not JSON: {self.path}: {e}") from e
