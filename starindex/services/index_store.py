"""Durable store for the month index.

Every mutation is a load-merge-save cycle under an exclusive write lock,
and every save is a temp-file-plus-rename, so readers never observe a
partially written index and concurrent writers never lose each other's
tightenings.
"""

import fcntl
import json
import os
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

import structlog
from pydantic import ValidationError

from starindex.models.index import IndexEntry, MonthIndex, MonthKey
from starindex.observability.metrics import INDEX_ENTRIES, INDEX_UPDATES
from starindex.utils.exceptions import CorruptIndexError, IndexPersistenceError

logger = structlog.get_logger()


class IndexStore:
    """Persisted mapping from (year, month) to start page.

    Provides:
    - Tolerant loading (missing or corrupt files yield an empty index)
    - Merge with the tightening rule (start pages only move earlier)
    - Atomic saves with fsync and rename
    - A cross-process write lock around load-merge-save
    """

    def __init__(self, index_path: Path):
        """Initialize the index store.

        Args:
            index_path: Path to the index JSON document
        """
        self.index_path = Path(index_path)
        self.lock_path = self.index_path.with_name(self.index_path.name + ".lock")
        self._thread_lock = threading.Lock()

    def _ensure_directory(self) -> None:
        try:
            self.index_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IndexPersistenceError(
                f"Cannot create index directory {self.index_path.parent}: {e}"
            )

    @contextmanager
    def write_lock(self) -> Iterator[None]:
        """Exclusive lock held for one load-merge-save cycle"""
        self._ensure_directory()
        with self._thread_lock:
            with open(self.lock_path, "a") as lock_file:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def load(self) -> MonthIndex:
        """Load the index from disk.

        Returns:
            Persisted index, or a fresh empty one when the file is missing
            or cannot be parsed (a corrupt file is kept as ``*.corrupt``)
        """
        if not self.index_path.exists():
            logger.debug("index_not_found", path=str(self.index_path))
            return MonthIndex()

        try:
            return self.read_file(self.index_path)
        except CorruptIndexError as e:
            logger.error("index_corrupt", path=str(self.index_path), error=str(e))
            self._backup_corrupt()
            return MonthIndex()

    @staticmethod
    def read_file(path: Path) -> MonthIndex:
        """Parse an index document.

        Raises:
            CorruptIndexError: If the file is not a valid index
            IndexPersistenceError: If the file cannot be read
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return MonthIndex.model_validate(data)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            raise CorruptIndexError(f"Invalid index file {path}: {e}") from e
        except OSError as e:
            raise IndexPersistenceError(f"Cannot read index file {path}: {e}") from e

    def _backup_corrupt(self) -> None:
        backup_path = self.index_path.with_suffix(self.index_path.suffix + ".corrupt")
        try:
            os.replace(self.index_path, backup_path)
            logger.warning("index_backed_up", backup=str(backup_path))
        except OSError as e:
            logger.warning("index_backup_failed", error=str(e))

    def save(self, index: MonthIndex) -> None:
        """Save the index atomically.

        Raises:
            IndexPersistenceError: If the write or rename fails
        """
        self._ensure_directory()
        index.last_updated = datetime.now(timezone.utc)

        try:
            fd, tmp_path = tempfile.mkstemp(
                dir=self.index_path.parent,
                prefix=f".{self.index_path.stem}_",
                suffix=".tmp",
            )

            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(index.model_dump_json(by_alias=True, indent=2))
                    f.flush()
                    os.fsync(f.fileno())

                os.replace(tmp_path, self.index_path)

            except Exception:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise

        except OSError as e:
            logger.error("index_save_failed", path=str(self.index_path), error=str(e))
            raise IndexPersistenceError(f"Failed to save index: {e}") from e

        INDEX_ENTRIES.set(len(index))
        logger.debug("index_saved", path=str(self.index_path), entries=len(index))

    def find_start_page(self, year: int, month: int) -> Optional[int]:
        return self.load().find_start_page(year, month)

    def list_months(self) -> List[MonthKey]:
        """Indexed months, newest first"""
        return self.load().months()

    def upsert(self, entry: IndexEntry, source: str = "self_heal") -> bool:
        """Merge a single entry; returns True if the index changed"""
        return bool(self.merge([entry], source=source))

    def merge(
        self,
        entries: Iterable[IndexEntry],
        total_articles: Optional[int] = None,
        source: str = "build",
    ) -> List[MonthKey]:
        """Merge entries into the persisted index.

        Re-reads the index under the write lock so updates written by other
        writers since our last read are kept.

        Args:
            entries: Observed entries
            total_articles: Feed size to record, if known
            source: Metrics label (build, self_heal, import)

        Returns:
            Months whose entry was created or changed
        """
        entries = list(entries)

        with self.write_lock():
            index = self.load()
            changed = [entry.key for entry in entries if index.merge_entry(entry)]

            metadata_changed = (
                total_articles is not None and total_articles != index.total_articles
            )
            if metadata_changed:
                index.total_articles = total_articles

            if changed or metadata_changed:
                self.save(index)

        if changed:
            INDEX_UPDATES.labels(source=source).inc(len(changed))
            logger.info(
                "index_merged",
                source=source,
                changed=[key.label() for key in changed],
                entries=len(index),
            )

        return changed

    def import_file(self, source_path: Path) -> List[MonthKey]:
        """Merge a legacy or temporary index file into the store.

        Duplicate months in the source collapse to their smallest start page.

        Raises:
            CorruptIndexError: If the source is not a valid index file
            FileNotFoundError: If the source does not exist
        """
        source_path = Path(source_path)
        if not source_path.exists():
            raise FileNotFoundError(f"Index file not found: {source_path}")

        imported = self.read_file(source_path)
        logger.info("index_import_loaded", path=str(source_path), entries=len(imported))

        current_total = self.load().total_articles
        total = imported.total_articles if imported.total_articles > current_total else None

        return self.merge(imported.sorted_entries(), total_articles=total, source="import")
