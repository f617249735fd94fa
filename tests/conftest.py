"""Shared fixtures: an in-memory starred feed and zero-delay settings"""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from starindex.models.config import FetcherSettings, IndexSettings
from starindex.services.checkpoint_service import CheckpointService
from starindex.services.fetcher import RateLimitedFetcher
from starindex.services.index_builder import IndexBuilder
from starindex.services.index_store import IndexStore
from starindex.observability.logging import configure_logging


@pytest.fixture(autouse=True)
def _restore_logging():
    """Rebind structlog to the real stderr after CliRunner swapped it out"""
    yield
    configure_logging()


def article(article_id: int, published: Optional[str]) -> dict:
    """Feedbin entry JSON with only the fields the index reads"""
    return {
        "id": article_id,
        "published": published,
        "title": f"Article {article_id}",
        "url": f"https://example.com/{article_id}",
        "feed_id": 1,
    }


def make_pages(*pages: List[str]) -> List[List[dict]]:
    """Build pages of entry JSON from lists of publication timestamps"""
    result = []
    next_id = 1
    for timestamps in pages:
        page = []
        for ts in timestamps:
            page.append(article(next_id, ts))
            next_id += 1
        result.append(page)
    return result


class FakeFeed:
    """Stands in for FeedbinClient.

    ``errors`` maps a page to an exception raised on every request for it.
    ``on_page`` is called with each requested page number.
    ``past_end_error`` is raised for pages beyond the last one instead of
    returning an empty list, and ``count_error`` from the count endpoint.
    """

    def __init__(
        self,
        pages: List[List[dict]],
        per_page: int = 2,
        errors: Optional[Dict[int, Exception]] = None,
        on_page: Optional[Callable[[int], None]] = None,
        total: Optional[int] = None,
        past_end_error: Optional[Exception] = None,
        count_error: Optional[Exception] = None,
    ):
        self.pages = pages
        self.per_page = per_page
        self.errors = errors or {}
        self.on_page = on_page
        self.total = total if total is not None else sum(len(p) for p in pages)
        self.past_end_error = past_end_error
        self.count_error = count_error
        self.requested: List[int] = []

    async def get_entries_page(self, page: int, per_page: Optional[int] = None) -> List[dict]:
        self.requested.append(page)
        if self.on_page:
            self.on_page(page)
        if page in self.errors:
            raise self.errors[page]
        if page > len(self.pages):
            if self.past_end_error is not None:
                raise self.past_end_error
            return []
        return self.pages[page - 1]

    async def get_starred_count(self) -> int:
        if self.count_error is not None:
            raise self.count_error
        return self.total


@pytest.fixture
def temp_dir():
    """Create temporary data directory"""
    path = Path(tempfile.mkdtemp())
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def fast_fetcher_settings():
    """No pacing delays, small retry budget"""
    return FetcherSettings(
        base_delay_seconds=0,
        jitter_seconds=0,
        max_retries=1,
        backoff_base_seconds=0,
        max_backoff_seconds=0,
    )


@pytest.fixture
def index_settings(temp_dir):
    return IndexSettings(
        index_path=str(temp_dir / "index.json"),
        checkpoint_path=str(temp_dir / "index.checkpoint.json"),
        earliest_year=2013,
        checkpoint_interval=2,
    )


@pytest.fixture
def index_store(index_settings):
    return IndexStore(Path(index_settings.index_path))


@pytest.fixture
def checkpoints(index_settings):
    return CheckpointService(
        Path(index_settings.checkpoint_path), earliest_year=index_settings.earliest_year
    )


@pytest.fixture
def make_builder(fast_fetcher_settings, index_store, checkpoints, index_settings):
    """Factory: builder over a FakeFeed, optionally overriding index settings"""

    def _make(feed: FakeFeed, **overrides) -> IndexBuilder:
        settings = index_settings.model_copy(update=overrides)
        fetcher = RateLimitedFetcher(feed, fast_fetcher_settings)
        return IndexBuilder(fetcher, index_store, checkpoints, settings)

    return _make
