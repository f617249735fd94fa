"""Read path: turn a month filter into a page number and learn from fetches.

Every page the dashboard fetches is also evidence about where months
start. Observations only ever tighten the index (move a start page
earlier) or add missing months, so concurrent readers can report back
without coordinating beyond the store's write lock.
"""

from datetime import datetime
from typing import List, Optional

import structlog
from pydantic import BaseModel, Field

from starindex.models.article import StarredArticle
from starindex.models.index import IndexEntry, MonthKey
from starindex.models.scan import PageClassification
from starindex.services.fetcher import RateLimitedFetcher
from starindex.services.index_store import IndexStore
from starindex.services.page_classifier import classify_page
from starindex.utils.exceptions import IndexStoreError
from starindex.utils.months import month_date_range

logger = structlog.get_logger()


class MonthQueryResult(BaseModel):
    """A date-filtered page fetch"""

    year: Optional[int] = None
    month: Optional[int] = None
    page: int = Field(..., ge=1)
    from_index: bool = False
    matched: bool = False
    articles: List[StarredArticle] = Field(default_factory=list)
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    updated_months: List[str] = Field(default_factory=list)


class SelfHealingQuery:
    """Month lookups backed by the index, refined by live traffic."""

    def __init__(self, index_store: IndexStore):
        self.index_store = index_store

    def resolve_page(
        self,
        year: Optional[int] = None,
        month: Optional[int] = None,
        requested_page: int = 1,
    ) -> int:
        """Page to fetch for a month filter.

        Returns the indexed start page when both year and month are given
        and known, otherwise ``requested_page`` unchanged.
        """
        if year is None or month is None:
            return requested_page

        start_page = self._indexed_page(year, month)
        if start_page is None:
            logger.debug("month_not_indexed", year=year, month=month)
            return requested_page

        logger.debug("month_resolved", year=year, month=month, start_page=start_page)
        return start_page

    def _indexed_page(self, year: int, month: int) -> Optional[int]:
        """Start page from the index; an unreadable index counts as not indexed"""
        try:
            return self.index_store.find_start_page(year, month)
        except IndexStoreError as e:
            logger.warning("index_read_failed", year=year, month=month, error=str(e))
            return None

    def record_observation(
        self,
        year: Optional[int],
        month: Optional[int],
        page: int,
        articles: List[StarredArticle],
    ) -> List[MonthKey]:
        """Feed a fetched page back into the index.

        Every month present on the page is recorded at ``page`` if it has
        no entry or its entry starts later. Entries are never loosened.

        Args:
            year: Year the caller filtered on, if any (for logging)
            month: Month the caller filtered on, if any (for logging)
            page: Page number that was fetched
            articles: Articles returned for that page

        Returns:
            Months whose entry was created or tightened; empty when the
            index cannot be read or written
        """
        classification = classify_page(articles)
        if classification.is_empty:
            return []

        try:
            return self._write_back(year, month, page, classification)
        except IndexStoreError as e:
            logger.warning("self_heal_failed", page=page, error=str(e))
            return []

    def _write_back(
        self,
        year: Optional[int],
        month: Optional[int],
        page: int,
        classification: PageClassification,
    ) -> List[MonthKey]:
        index = self.index_store.load()
        candidates = []
        for key in classification.months_newest_first():
            current = index.find_start_page(key.year, key.month)
            if current is None or current > page:
                candidates.append(
                    IndexEntry(
                        year=key.year,
                        month=key.month,
                        start_page=page,
                        article_count=classification.month_counts[key],
                    )
                )

        if not candidates:
            return []

        # The store re-checks under its write lock, so a racing writer
        # that tightened further wins
        updated = self.index_store.merge(candidates, source="self_heal")

        if updated:
            logger.info(
                "index_self_healed",
                requested=f"{year}-{month}" if year and month else None,
                page=page,
                months=[key.label() for key in updated],
            )
        return updated

    def list_available_months(self) -> List[MonthKey]:
        """Indexed months, newest first"""
        return self.index_store.list_months()

    async def fetch_month(
        self,
        fetcher: RateLimitedFetcher,
        year: Optional[int] = None,
        month: Optional[int] = None,
        requested_page: int = 1,
    ) -> MonthQueryResult:
        """Resolve, fetch and record in one step.

        A page that does not contain the requested month is still
        returned (``matched=False``); that is a soft degradation, not an
        error.
        """
        page = self.resolve_page(year, month, requested_page)

        from_index = False
        since = until = None
        if year is not None and month is not None:
            from_index = self._indexed_page(year, month) is not None
            since, until = month_date_range(year, month)

        fetch = await fetcher.fetch_page(page)
        updated = self.record_observation(year, month, page, fetch.articles)

        matched = False
        if year is not None and month is not None:
            target = MonthKey(year, month)
            matched = target in classify_page(fetch.articles).months_present
            if not matched:
                logger.info(
                    "month_not_on_page", year=year, month=month, page=page, outcome=fetch.outcome.value
                )

        return MonthQueryResult(
            year=year,
            month=month,
            page=page,
            from_index=from_index,
            matched=matched,
            articles=fetch.articles,
            since=since,
            until=until,
            updated_months=[key.label() for key in updated],
        )
