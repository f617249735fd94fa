"""
Checkpoint service for resumable index builds.

Saves scan progress every N pages and on interruption so a build can
resume with at most N pages of rework. Uses atomic file writes to prevent
corruption.
"""

import json
import os
from pathlib import Path
from typing import Optional

import structlog
from pydantic import ValidationError

from starindex.models.build import BuildMode
from starindex.models.checkpoint import ScanCheckpoint
from starindex.models.index import MonthIndex, MonthKey
from starindex.utils.exceptions import CheckpointMismatchError, IndexPersistenceError
from starindex.utils.months import months_descending

logger = structlog.get_logger()


class CheckpointService:
    """
    Manage the scan checkpoint document.

    Resume state is ``last_page_processed`` alone; everything else in the
    document is a recomputed progress hint.
    """

    def __init__(self, checkpoint_path: Path, earliest_year: int):
        """
        Initialize checkpoint service.

        Args:
            checkpoint_path: Path to the checkpoint JSON document
            earliest_year: Year the scan stops at, used for the
                remaining-months hint
        """
        self.checkpoint_path = Path(checkpoint_path)
        self.earliest_year = earliest_year

    def exists(self) -> bool:
        return self.checkpoint_path.exists()

    def load(self) -> Optional[ScanCheckpoint]:
        """
        Load the checkpoint.

        Returns:
            Checkpoint if one exists and parses, None otherwise
        """
        if not self.checkpoint_path.exists():
            logger.debug("no_checkpoint_found", path=str(self.checkpoint_path))
            return None

        try:
            with open(self.checkpoint_path, "r", encoding="utf-8") as f:
                data = json.load(f)

            checkpoint = ScanCheckpoint.model_validate(data)

            logger.info(
                "checkpoint_loaded",
                last_page_processed=checkpoint.last_page_processed,
                current_month=checkpoint.current_month.label()
                if checkpoint.current_month
                else None,
            )
            return checkpoint

        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error(
                "checkpoint_load_error", path=str(self.checkpoint_path), error=str(e)
            )
            return None

    def save(
        self,
        last_page_processed: int,
        current_month: Optional[MonthKey] = None,
        leading_month: Optional[MonthKey] = None,
        mode: BuildMode = BuildMode.FULL,
    ) -> ScanCheckpoint:
        """
        Save checkpoint atomically.

        Args:
            last_page_processed: Highest page fully classified and merged
            current_month: Oldest month seen on that page
            leading_month: Newest month of the feed when the build began
            mode: Mode of the run writing the checkpoint

        Returns:
            The checkpoint that was written

        Raises:
            IndexPersistenceError: If the write fails
        """
        checkpoint = ScanCheckpoint(
            last_page_processed=last_page_processed,
            current_month=current_month,
            leading_month=leading_month,
            remaining_months=self.remaining_months(current_month),
            mode=mode,
        )

        temp_file = self.checkpoint_path.with_suffix(".tmp")

        try:
            self.checkpoint_path.parent.mkdir(parents=True, exist_ok=True)

            with open(temp_file, "w", encoding="utf-8") as f:
                f.write(checkpoint.model_dump_json(indent=2))
                f.flush()
                os.fsync(f.fileno())

            os.replace(temp_file, self.checkpoint_path)

        except OSError as e:
            logger.error("checkpoint_save_error", error=str(e))
            if temp_file.exists():
                temp_file.unlink()
            raise IndexPersistenceError(f"Failed to save checkpoint: {e}") from e

        logger.info(
            "checkpoint_saved",
            last_page_processed=last_page_processed,
            remaining_months=len(checkpoint.remaining_months),
        )
        return checkpoint

    def clear(self) -> bool:
        """
        Delete the checkpoint.

        Returns:
            True if no checkpoint remains
        """
        if not self.checkpoint_path.exists():
            return True

        try:
            self.checkpoint_path.unlink()
            logger.info("checkpoint_cleared", path=str(self.checkpoint_path))
            return True

        except OSError as e:
            logger.error("checkpoint_clear_error", error=str(e))
            return False

    def remaining_months(self, current_month: Optional[MonthKey]) -> list:
        """Months from ``current_month`` back to January of the earliest year"""
        if current_month is None:
            return []
        stop = MonthKey(self.earliest_year, 1)
        return [key.label() for key in months_descending(current_month, stop)]

    def verify_against(self, checkpoint: ScanCheckpoint, index: MonthIndex) -> None:
        """
        Check that the index reflects the progress the checkpoint claims.

        Raises:
            CheckpointMismatchError: If pages were processed but the index is
                empty, or the checkpoint's current month is not indexed
        """
        if checkpoint.last_page_processed > 0 and len(index) == 0:
            raise CheckpointMismatchError(
                f"Checkpoint at page {checkpoint.last_page_processed} "
                "but the index has no entries"
            )

        current = checkpoint.current_month
        if current is not None and index.entry_for(current.year, current.month) is None:
            raise CheckpointMismatchError(
                f"Checkpoint month {current.label()} is missing from the index"
            )
