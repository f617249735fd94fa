"""Custom exceptions for the starred-articles month index

This module defines the exception hierarchy used across the index:
- Fetch errors raised or classified at the RateLimitedFetcher boundary
- Store errors for the persisted index and checkpoint documents
- Coordination errors between concurrent builds

All exceptions inherit from StarIndexError so callers can catch any
index-related failure in a single except block when needed.
"""

from typing import Optional


class StarIndexError(Exception):
    """Base exception for all month index errors

    Use this to catch any error raised by the index services:
    ```python
    try:
        result = await builder.run(BuildMode.RESUME)
    except StarIndexError as e:
        logger.error("build_failed", error=str(e))
    ```
    """

    pass


class FeedbinAPIError(StarIndexError):
    """Feedbin API returned a non-success status

    Raised by the HTTP client when:
    - Server returns 5xx
    - Request is rejected (401, 403, 404)
    """

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class FeedbinRateLimitError(FeedbinAPIError):
    """Feedbin throttled the request (HTTP 429)

    Carries the Retry-After header value, in seconds, when present.
    """

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message, status=429)
        self.retry_after = retry_after


class FetchError(StarIndexError):
    """Base for errors classified at the fetcher boundary"""

    pass


class RateLimitedError(FetchError):
    """Rate limit retry budget exhausted for a page

    The page is considered unfetched: callers must not mark it processed.
    """

    def __init__(self, page: int, attempts: int) -> None:
        super().__init__(
            f"Page {page} still rate limited after {attempts} attempts"
        )
        self.page = page
        self.attempts = attempts


class TransientFetchError(FetchError):
    """Network or server error while fetching a page

    Never propagated into the scan loop: the fetcher converts it into an
    empty page so a single flaky request cannot abort a long scan.
    """

    pass


class FeedExhausted(FetchError):
    """No more pages are available (normal completion, not a failure)"""

    pass


class IndexStoreError(StarIndexError):
    """Base for persisted index errors"""

    pass


class CorruptIndexError(IndexStoreError):
    """Persisted index could not be parsed

    Recovered by treating the index as empty rather than aborting.
    """

    pass


class IndexPersistenceError(IndexStoreError):
    """Writing the index or checkpoint failed (disk full, permissions)

    Fatal for the current run.
    """

    pass


class CheckpointMismatchError(StarIndexError):
    """Loaded checkpoint disagrees with the persisted index

    Resume still proceeds from the checkpoint page.
    """

    pass


class BuildInProgressError(StarIndexError):
    """Another build or resume run holds the build lock"""

    pass
