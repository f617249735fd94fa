"""Data models for index build runs."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class BuildMode(str, Enum):
    FULL = "full"
    RESUME = "resume"


class BuildState(str, Enum):
    """Builder state machine: Idle -> Scanning -> terminal state"""

    IDLE = "idle"
    SCANNING = "scanning"
    CHECKPOINTED = "checkpointed"
    COMPLETED = "completed"
    FAILED = "failed"


class StopReason(str, Enum):
    """Why the scan loop ended"""

    CUTOFF_REACHED = "cutoff_reached"
    FEED_EXHAUSTED = "feed_exhausted"
    LAST_PAGE_REACHED = "last_page_reached"
    PAGE_LIMIT = "page_limit"
    RATE_LIMITED = "rate_limited"
    CANCELLED = "cancelled"
    PERSISTENCE_ERROR = "persistence_error"


class BuildResult(BaseModel):
    """Outcome of a build or resume run"""

    mode: BuildMode
    state: BuildState = BuildState.IDLE
    entries_found: int = Field(0, ge=0)
    pages_scanned: int = Field(0, ge=0)
    start_page: int = Field(1, ge=1)
    last_page_processed: int = Field(0, ge=0)
    total_pages: Optional[int] = None
    skipped_pages: List[int] = Field(default_factory=list)
    stop_reason: Optional[StopReason] = None
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.state == BuildState.COMPLETED

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data["completed"] = self.completed
        return data
