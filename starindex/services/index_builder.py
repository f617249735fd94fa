"""Index builder: scan the starred feed and record where each month starts.

Pages are walked strictly in increasing order from the newest. The first
page on which a month is seen becomes its start page ("first sighting
wins"), except for the leading month (the newest month in the feed when
the build began), which is anchored to page 1. Progress is checkpointed
every N pages so an interrupted build resumes with bounded rework.
"""

import asyncio
import fcntl
import math
import os
import signal
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

import structlog

from starindex.models.build import BuildMode, BuildResult, BuildState, StopReason
from starindex.models.config import IndexSettings
from starindex.models.index import IndexEntry, MonthIndex, MonthKey
from starindex.models.scan import PageClassification
from starindex.observability.metrics import (
    BUILD_DURATION,
    BUILD_RUNS,
    LAST_PAGE_PROCESSED,
)
from starindex.services.checkpoint_service import CheckpointService
from starindex.services.fetcher import RateLimitedFetcher
from starindex.services.index_store import IndexStore
from starindex.services.page_classifier import classify_page, describe_page
from starindex.utils.exceptions import (
    BuildInProgressError,
    CheckpointMismatchError,
    IndexPersistenceError,
    RateLimitedError,
)

logger = structlog.get_logger()


@dataclass
class _ScanState:
    """In-memory working set of one build run"""

    mode: BuildMode
    start_page: int
    last_page: int
    leading: Optional[MonthKey] = None
    current_month: Optional[MonthKey] = None
    earliest: Optional[MonthKey] = None
    total_articles: Optional[int] = None
    working: Dict[MonthKey, IndexEntry] = field(default_factory=dict)


class IndexBuilder:
    """Full and resumable month index builds.

    State machine: idle -> scanning -> checkpointed | completed | failed.
    At most one build runs at a time, enforced by a lock file next to the
    index.
    """

    def __init__(
        self,
        fetcher: RateLimitedFetcher,
        index_store: IndexStore,
        checkpoints: CheckpointService,
        settings: IndexSettings,
    ):
        self.fetcher = fetcher
        self.index_store = index_store
        self.checkpoints = checkpoints
        self.settings = settings
        self.state = BuildState.IDLE
        self._cancel_requested = False
        self.build_lock_path = index_store.index_path.with_name(
            index_store.index_path.name + ".build.lock"
        )

    @property
    def cutoff(self) -> MonthKey:
        return MonthKey(self.settings.earliest_year, 1)

    def cancel(self) -> None:
        """Request a stop; honoured between pages."""
        if not self._cancel_requested:
            logger.info("build_cancel_requested")
        self._cancel_requested = True

    def install_signal_handlers(self) -> None:
        """Route SIGINT/SIGTERM to cancel() on the running loop."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.cancel)

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)

    @contextmanager
    def _build_lock(self) -> Iterator[None]:
        self.build_lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.build_lock_path, "a+") as lock_file:
            try:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                raise BuildInProgressError(
                    f"Another build holds {self.build_lock_path}"
                )

            lock_file.seek(0)
            lock_file.truncate()
            lock_file.write(str(os.getpid()))
            lock_file.flush()

            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    async def run(self, mode: BuildMode, reset_index: bool = False) -> BuildResult:
        """Run a full or resumed build.

        Args:
            mode: FULL scans from page 1; RESUME continues after the
                checkpoint's last processed page
            reset_index: With FULL, discard the persisted index first

        Returns:
            BuildResult describing how far the scan got

        Raises:
            BuildInProgressError: If another build is running
        """
        self._cancel_requested = False
        started = time.monotonic()

        with self._build_lock():
            result = await self._run_locked(BuildMode(mode), reset_index)

        BUILD_RUNS.labels(mode=result.mode.value, state=result.state.value).inc()
        BUILD_DURATION.labels(mode=result.mode.value).observe(time.monotonic() - started)

        logger.info(
            "build_finished",
            mode=result.mode.value,
            state=result.state.value,
            stop_reason=result.stop_reason.value if result.stop_reason else None,
            entries_found=result.entries_found,
            pages_scanned=result.pages_scanned,
            last_page_processed=result.last_page_processed,
            skipped_pages=len(result.skipped_pages),
        )
        return result

    async def _run_locked(self, mode: BuildMode, reset_index: bool) -> BuildResult:
        scan = self._initial_state(mode, reset_index)
        result = BuildResult(
            mode=mode, start_page=scan.start_page, last_page_processed=scan.last_page
        )

        try:
            return await self._scan(scan, result)
        except IndexPersistenceError as e:
            return self._fail(scan, result, e)

    def _initial_state(self, mode: BuildMode, reset_index: bool) -> _ScanState:
        if mode == BuildMode.RESUME:
            checkpoint = self.checkpoints.load()

            if checkpoint is None:
                logger.warning("resume_without_checkpoint", action="starting_from_page_1")
                return _ScanState(mode=mode, start_page=1, last_page=0)

            try:
                self.checkpoints.verify_against(checkpoint, self.index_store.load())
            except CheckpointMismatchError as e:
                logger.warning("checkpoint_mismatch", error=str(e), action="resuming_anyway")

            logger.info("build_resuming", from_page=checkpoint.next_page)
            return _ScanState(
                mode=mode,
                start_page=checkpoint.next_page,
                last_page=checkpoint.last_page_processed,
                leading=checkpoint.leading_month,
                current_month=checkpoint.current_month,
                earliest=checkpoint.current_month,
            )

        if self.checkpoints.exists():
            logger.info("stale_checkpoint_discarded")
            self.checkpoints.clear()

        if reset_index:
            with self.index_store.write_lock():
                self.index_store.save(MonthIndex())
            logger.info("index_reset")

        return _ScanState(mode=mode, start_page=1, last_page=0)

    async def _scan(self, scan: _ScanState, result: BuildResult) -> BuildResult:
        self.state = BuildState.SCANNING

        scan.total_articles = await self.fetcher.get_total_articles()
        total_pages = None
        if scan.total_articles is not None:
            total_pages = math.ceil(scan.total_articles / self.fetcher.per_page)
        result.total_pages = total_pages

        logger.info(
            "build_started",
            mode=scan.mode.value,
            start_page=scan.start_page,
            total_pages=total_pages,
            total_articles=scan.total_articles,
            earliest_year=self.settings.earliest_year,
        )

        self._save_checkpoint(scan)

        page = scan.start_page
        pages_this_run = 0
        consecutive_failures = 0
        stop_reason = StopReason.LAST_PAGE_REACHED

        while total_pages is None or page <= total_pages:
            if self._cancel_requested:
                return self._interrupt(scan, result, StopReason.CANCELLED)

            limit = self.settings.max_pages_per_run
            if limit is not None and pages_this_run >= limit:
                return self._interrupt(scan, result, StopReason.PAGE_LIMIT)

            try:
                fetch = await self.fetcher.fetch_page(page)
            except RateLimitedError as e:
                if not self.settings.skip_rate_limited_pages:
                    result.error = str(e)
                    return self._interrupt(scan, result, StopReason.RATE_LIMITED)

                logger.warning("rate_limited_page_skipped", page=page)
                result.skipped_pages.append(page)
                pages_this_run += 1
                self._mark_processed(scan, result, page, pages_this_run)
                page += 1
                continue

            pages_this_run += 1

            if fetch.is_exhausted:
                stop_reason = StopReason.FEED_EXHAUSTED
                break

            if fetch.is_transient_error:
                logger.warning("page_skipped", page=page, error=fetch.error)
                result.skipped_pages.append(page)
                self._mark_processed(scan, result, page, pages_this_run)

                # Without a page count a run of failures is the only end-of-feed signal
                consecutive_failures += 1
                if (
                    total_pages is None
                    and consecutive_failures >= self.settings.max_consecutive_failures
                ):
                    logger.warning(
                        "consecutive_failures_limit",
                        page=page,
                        failures=consecutive_failures,
                    )
                    stop_reason = StopReason.FEED_EXHAUSTED
                    break

                page += 1
                continue

            consecutive_failures = 0

            classification = classify_page(fetch.articles)
            logger.debug("page_classified", **describe_page(page, classification))

            if classification.is_empty:
                logger.info("page_without_dates", page=page)
            else:
                self._apply_page(scan, page, classification)

            self._mark_processed(scan, result, page, pages_this_run)

            if scan.earliest is not None and scan.earliest <= self.cutoff:
                logger.info(
                    "cutoff_reached",
                    page=page,
                    earliest=scan.earliest.label(),
                    cutoff=self.cutoff.label(),
                )
                stop_reason = StopReason.CUTOFF_REACHED
                break

            page += 1

        return self._complete(scan, result, stop_reason)

    def _apply_page(
        self, scan: _ScanState, page: int, classification: PageClassification
    ) -> None:
        """Fold one page into the working set (never awaits: one unit)."""
        if scan.leading is None and scan.start_page == 1:
            scan.leading = classification.newest
            logger.info("leading_month_set", month=scan.leading.label())

        for key in classification.months_newest_first():
            count = classification.month_counts[key]
            entry = scan.working.get(key)

            if entry is not None:
                entry.article_count += count
                continue

            start_page = 1 if key == scan.leading else page
            scan.working[key] = IndexEntry(
                year=key.year,
                month=key.month,
                start_page=start_page,
                article_count=count,
            )
            logger.info("month_found", month=key.label(), start_page=start_page, page=page)

        scan.current_month = classification.oldest
        if scan.earliest is None or classification.oldest < scan.earliest:
            scan.earliest = classification.oldest

    def _mark_processed(
        self, scan: _ScanState, result: BuildResult, page: int, pages_this_run: int
    ) -> None:
        scan.last_page = page
        result.last_page_processed = page
        result.pages_scanned = pages_this_run
        result.entries_found = len(scan.working)
        LAST_PAGE_PROCESSED.set(page)

        if pages_this_run % self.settings.checkpoint_interval == 0:
            self._save_progress(scan)

    def _save_checkpoint(self, scan: _ScanState) -> None:
        self.checkpoints.save(
            last_page_processed=scan.last_page,
            current_month=scan.current_month,
            leading_month=scan.leading,
            mode=scan.mode,
        )

    def _save_progress(self, scan: _ScanState) -> None:
        # Index first: a checkpoint must never get ahead of the entries it covers
        self.index_store.merge(scan.working.values(), source="build")
        self._save_checkpoint(scan)

    def _interrupt(
        self, scan: _ScanState, result: BuildResult, reason: StopReason
    ) -> BuildResult:
        self._save_progress(scan)
        self.state = BuildState.CHECKPOINTED
        result.state = self.state
        result.stop_reason = reason
        result.entries_found = len(scan.working)
        logger.info(
            "build_checkpointed",
            reason=reason.value,
            last_page_processed=scan.last_page,
            resume_from=scan.last_page + 1,
        )
        return result

    def _complete(
        self, scan: _ScanState, result: BuildResult, reason: StopReason
    ) -> BuildResult:
        self.index_store.merge(
            scan.working.values(), total_articles=scan.total_articles, source="build"
        )
        self.checkpoints.clear()

        self.state = BuildState.COMPLETED
        result.state = self.state
        result.stop_reason = reason
        result.entries_found = len(scan.working)
        return result

    def _fail(
        self, scan: _ScanState, result: BuildResult, error: IndexPersistenceError
    ) -> BuildResult:
        logger.error("build_persistence_failed", error=str(error))

        try:
            self._save_progress(scan)
            logger.info("build_final_save_succeeded", last_page_processed=scan.last_page)
        except IndexPersistenceError as e:
            logger.error("build_final_save_failed", error=str(e))

        self.state = BuildState.FAILED
        result.state = self.state
        result.stop_reason = StopReason.PERSISTENCE_ERROR
        result.error = str(error)
        result.entries_found = len(scan.working)
        return result
