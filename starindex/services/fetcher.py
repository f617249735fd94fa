"""Rate-limited, strictly sequential page fetcher.

Wraps the Feedbin client with the pacing and error policy a multi-hour
scan needs:
- A fixed base delay plus jitter before every request
- Bounded exponential backoff on HTTP 429, then RateLimitedError
- Any other transport/server error degrades to an empty page
"""

import asyncio
from typing import List, Optional

import aiohttp
import structlog
from pydantic import ValidationError

from starindex.models.article import StarredArticle
from starindex.models.config import FetcherSettings
from starindex.models.scan import FetchOutcome, PageFetch
from starindex.observability.metrics import PAGES_FETCHED, RATE_LIMIT_RETRIES
from starindex.utils.exceptions import (
    FeedbinAPIError,
    FeedbinRateLimitError,
    FeedExhausted,
    RateLimitedError,
    TransientFetchError,
)
from starindex.utils.retry import BackoffPolicy

logger = structlog.get_logger()

TRANSPORT_ERRORS = (FeedbinAPIError, aiohttp.ClientError, asyncio.TimeoutError, ValueError)


class RateLimitedFetcher:
    """Fetch pages of starred entries one at a time.

    ``client`` is anything exposing ``per_page``, ``get_entries_page(page)``
    and ``get_starred_count()`` coroutines, normally a FeedbinClient.
    """

    def __init__(self, client, settings: FetcherSettings):
        """
        Initialize fetcher.

        Args:
            client: Starred-entries client
            settings: Pacing and backoff settings
        """
        self.client = client
        self.settings = settings
        self.backoff = BackoffPolicy(settings)

    @property
    def per_page(self) -> int:
        return self.client.per_page

    async def fetch_page(self, page: int) -> PageFetch:
        """
        Fetch one page, retrying rate-limit responses with backoff.

        Args:
            page: 1-indexed page number

        Returns:
            PageFetch with outcome ok, exhausted or transient_error

        Raises:
            RateLimitedError: If the page is still throttled after
                max_retries retries
        """
        attempt = 0

        while True:
            await asyncio.sleep(self.backoff.request_delay())

            try:
                raw = await self._request(page)
                break

            except FeedExhausted:
                PAGES_FETCHED.labels(outcome=FetchOutcome.EXHAUSTED.value).inc()
                logger.info("feed_exhausted", page=page)
                return PageFetch(
                    page=page, outcome=FetchOutcome.EXHAUSTED, attempts=attempt + 1
                )

            except FeedbinRateLimitError as e:
                if attempt + 1 >= self.backoff.max_attempts:
                    PAGES_FETCHED.labels(outcome="rate_limited").inc()
                    logger.error("page_rate_limited", page=page, attempts=attempt + 1)
                    raise RateLimitedError(page, attempt + 1)

                delay = self.backoff.calculate_delay(attempt, e.retry_after)
                RATE_LIMIT_RETRIES.inc()
                logger.warning(
                    "rate_limit_backoff",
                    page=page,
                    attempt=attempt + 1,
                    max_retries=self.settings.max_retries,
                    delay_seconds=round(delay, 2),
                    retry_after=e.retry_after,
                )
                await asyncio.sleep(delay)
                attempt += 1

            except TransientFetchError as e:
                PAGES_FETCHED.labels(outcome=FetchOutcome.TRANSIENT_ERROR.value).inc()
                logger.warning("page_fetch_failed", page=page, error=str(e))
                return PageFetch(
                    page=page,
                    outcome=FetchOutcome.TRANSIENT_ERROR,
                    attempts=attempt + 1,
                    error=str(e),
                )

        PAGES_FETCHED.labels(outcome=FetchOutcome.OK.value).inc()
        articles = self._parse_articles(page, raw)
        logger.debug("page_fetched", page=page, articles=len(articles), attempts=attempt + 1)

        return PageFetch(page=page, articles=articles, attempts=attempt + 1)

    async def _request(self, page: int) -> List[dict]:
        """Issue one request and classify everything except HTTP 429.

        Raises:
            FeedbinRateLimitError: Passed through for the backoff loop
            TransientFetchError: Any other transport or server failure
            FeedExhausted: The page came back empty
        """
        try:
            raw = await self.client.get_entries_page(page)
        except FeedbinRateLimitError:
            raise
        except TRANSPORT_ERRORS as e:
            raise TransientFetchError(f"{type(e).__name__}: {e}") from e

        if not raw:
            raise FeedExhausted(f"Page {page} is past the end of the feed")
        return raw

    async def get_total_articles(self) -> Optional[int]:
        """Current starred-article count, or None if it cannot be fetched"""
        try:
            return await self.client.get_starred_count()
        except TRANSPORT_ERRORS as e:
            logger.warning("starred_count_unavailable", error=str(e))
            return None

    def _parse_articles(self, page: int, raw: List[dict]) -> List[StarredArticle]:
        articles: List[StarredArticle] = []
        for item in raw:
            try:
                articles.append(StarredArticle.model_validate(item))
            except ValidationError as e:
                logger.warning(
                    "malformed_entry_skipped",
                    page=page,
                    entry_id=item.get("id") if isinstance(item, dict) else None,
                    error=str(e),
                )
        return articles
