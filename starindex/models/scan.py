"""Per-page scan models: fetch outcomes and page classification."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field

from starindex.models.article import StarredArticle
from starindex.models.index import MonthKey


class FetchOutcome(str, Enum):
    """How a page fetch ended"""

    OK = "ok"
    EXHAUSTED = "exhausted"  # 200 with no entries: end of feed
    TRANSIENT_ERROR = "transient_error"  # degraded to an empty page


class PageFetch(BaseModel):
    """Result of fetching one page of starred entries"""

    page: int = Field(..., ge=1)
    articles: List[StarredArticle] = Field(default_factory=list)
    outcome: FetchOutcome = FetchOutcome.OK
    attempts: int = Field(1, ge=1)
    error: Optional[str] = None

    @property
    def is_exhausted(self) -> bool:
        return self.outcome == FetchOutcome.EXHAUSTED

    @property
    def is_transient_error(self) -> bool:
        return self.outcome == FetchOutcome.TRANSIENT_ERROR


@dataclass
class PageClassification:
    """Months present on a page and its chronological extremes

    ``oldest``/``newest`` are None for an empty page, which callers treat
    differently from a page that has data but no month transition.
    """

    months_present: Set[MonthKey] = field(default_factory=set)
    month_counts: Dict[MonthKey, int] = field(default_factory=dict)
    oldest: Optional[MonthKey] = None
    newest: Optional[MonthKey] = None
    oldest_published: Optional[datetime] = None
    newest_published: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return not self.months_present

    def months_newest_first(self) -> List[MonthKey]:
        return sorted(self.months_present, reverse=True)
