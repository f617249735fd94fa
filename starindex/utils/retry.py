"""Backoff policy for rate-limited page fetches

Implements capped exponential backoff with additive jitter:

    delay = min(max_backoff, backoff_base * 2^attempt) + jitter

The retry loop itself lives in RateLimitedFetcher as an explicit bounded
loop so callers can tell "still rate limited" apart from "succeeded after
N retries".
"""

import random
from typing import Optional

from starindex.models.config import FetcherSettings


class BackoffPolicy:
    """Delay calculation for the fetcher's request pacing and retries."""

    def __init__(self, settings: FetcherSettings) -> None:
        """Initialize backoff policy.

        Args:
            settings: Fetcher settings with delays, jitter and retry budget
        """
        self.settings = settings

    @property
    def max_attempts(self) -> int:
        """Initial request plus configured retries"""
        return self.settings.max_retries + 1

    def jitter(self) -> float:
        """Random jitter in [0, jitter_seconds]"""
        if self.settings.jitter_seconds <= 0:
            return 0.0
        return random.uniform(0, self.settings.jitter_seconds)

    def request_delay(self) -> float:
        """Delay applied before every request"""
        return self.settings.base_delay_seconds + self.jitter()

    def calculate_delay(
        self, attempt: int, retry_after: Optional[float] = None
    ) -> float:
        """Calculate delay before retrying a rate-limited request.

        If the server supplied a Retry-After larger than the computed
        backoff, it wins (still capped at max_backoff_seconds).

        Args:
            attempt: Retry attempt number (0-indexed)
            retry_after: Optional Retry-After value from the response

        Returns:
            Delay in seconds to wait before the next attempt
        """
        backoff = self.settings.backoff_base_seconds * (2**attempt)
        if retry_after is not None and retry_after > backoff:
            backoff = retry_after
        return min(self.settings.max_backoff_seconds, backoff) + self.jitter()
