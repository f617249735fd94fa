"""Async client for the Feedbin v2 starred-entries API."""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from starindex.models.config import FeedbinSettings
from starindex.utils.exceptions import FeedbinAPIError, FeedbinRateLimitError

logger = structlog.get_logger()


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class FeedbinClient:
    """Thin async client for the Feedbin v2 starred-entries endpoints

    Authentication and transport live here; pacing and retry policy live
    in RateLimitedFetcher.
    """

    def __init__(
        self,
        settings: FeedbinSettings,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.settings = settings
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "FeedbinClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def per_page(self) -> int:
        return self.settings.per_page

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.settings.api_key:
            headers["Authorization"] = f"Basic {self.settings.api_key}"
        return headers

    def _auth(self) -> Optional[aiohttp.BasicAuth]:
        if self.settings.api_key:
            return None
        if self.settings.username and self.settings.password:
            return aiohttp.BasicAuth(self.settings.username, self.settings.password)
        return None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.settings.base_url.rstrip('/')}/{path}"
        session = self._get_session()

        async with session.get(
            url, params=params, headers=self._headers(), auth=self._auth()
        ) as response:
            if response.status == 429:
                raise FeedbinRateLimitError(
                    "Feedbin rate limit exceeded",
                    retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                )

            if response.status != 200:
                text = await response.text()
                logger.debug(
                    "feedbin_api_error", status=response.status, path=path, body=text[:200]
                )
                raise FeedbinAPIError(
                    f"Feedbin request failed: {response.status}", status=response.status
                )

            return await response.json()

    async def get_entries_page(self, page: int, per_page: Optional[int] = None) -> List[dict]:
        """Fetch one page of starred entries, newest first

        Raises:
            FeedbinRateLimitError: On HTTP 429
            FeedbinAPIError: On any other non-200 status
            aiohttp.ClientError, asyncio.TimeoutError: On transport failure
        """
        params = {
            "starred": "true",
            "per_page": per_page or self.settings.per_page,
            "page": page,
            "order": "desc",
        }
        data = await self._get_json("entries.json", params=params)
        return data if isinstance(data, list) else []

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((aiohttp.ClientError, asyncio.TimeoutError)),
        reraise=True,
    )
    async def get_starred_count(self) -> int:
        """Total number of starred entries (length of the starred id list)"""
        data = await self._get_json("starred_entries.json")
        count = len(data) if isinstance(data, list) else 0
        logger.info("starred_count_fetched", total=count)
        return count
