"""Data models for the scan checkpoint."""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from starindex.models.build import BuildMode
from starindex.models.index import MonthKey


class ScanCheckpoint(BaseModel):
    """Progress record for a multi-session index build

    ``last_page_processed`` is the only resume state. ``remaining_months``
    is recomputed on every save and exists for humans reading the file.
    """

    last_page_processed: int = Field(0, ge=0)
    leading_month: Optional[MonthKey] = None
    current_month: Optional[MonthKey] = None
    remaining_months: List[str] = Field(default_factory=list)
    mode: BuildMode = BuildMode.FULL
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def next_page(self) -> int:
        return self.last_page_processed + 1
