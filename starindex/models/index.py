"""Data models for the persisted month index.

The on-disk document keeps the field names of the dashboard's original
index file (``startPage``, ``articlesCount``, ``lastUpdated``,
``totalArticles``) so existing files load unchanged.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class MonthKey(NamedTuple):
    """A (year, month) pair; tuple ordering is chronological."""

    year: int
    month: int

    @classmethod
    def of(cls, year: int, month: int) -> "MonthKey":
        """Build a validated key.

        Raises:
            ValueError: If month is outside 1-12
        """
        if not 1 <= month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {month}")
        return cls(int(year), int(month))

    def label(self) -> str:
        """``YYYY-MM`` form, also used as the index dictionary key"""
        return f"{self.year:04d}-{self.month:02d}"


class IndexEntry(BaseModel):
    """Start page for one calendar month of starred articles"""

    model_config = ConfigDict(populate_by_name=True)

    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1, le=9999)
    start_page: int = Field(..., ge=1, alias="startPage")
    # Advisory only, never used for correctness
    article_count: int = Field(0, ge=0, alias="articlesCount")

    @property
    def key(self) -> MonthKey:
        return MonthKey(self.year, self.month)


class MonthIndex(BaseModel):
    """The persisted index: one entry per (year, month) plus metadata

    Entries are stored keyed by ``YYYY-MM`` and serialized as a list sorted
    newest first. Loading a list with duplicate months keeps the smallest
    start page, which is how temporary snapshots are finalized.
    """

    model_config = ConfigDict(populate_by_name=True)

    entries: Dict[str, IndexEntry] = Field(default_factory=dict)
    last_updated: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="lastUpdated"
    )
    total_articles: int = Field(0, ge=0, alias="totalArticles")

    @field_validator("entries", mode="before")
    @classmethod
    def dedupe_entries(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value

        merged = cls()
        for item in value:
            merged.merge_entry(IndexEntry.model_validate(item))
        return merged.entries

    @field_serializer("entries")
    def serialize_entries(self, entries: Dict[str, IndexEntry]) -> List[dict]:
        ordered = sorted(entries.values(), key=lambda e: e.key, reverse=True)
        return [entry.model_dump(by_alias=True) for entry in ordered]

    def merge_entry(self, entry: IndexEntry) -> bool:
        """Merge one observation using the tightening rule.

        Keeps the smaller start page and the larger article count, so
        applying the same entry twice is a no-op.

        Args:
            entry: Observed entry

        Returns:
            True if the index changed
        """
        label = entry.key.label()
        existing = self.entries.get(label)

        if existing is None:
            self.entries[label] = entry.model_copy()
            return True

        changed = False
        if entry.start_page < existing.start_page:
            existing.start_page = entry.start_page
            changed = True
        if entry.article_count > existing.article_count:
            existing.article_count = entry.article_count
            changed = True
        return changed

    def entry_for(self, year: int, month: int) -> Optional[IndexEntry]:
        return self.entries.get(MonthKey(year, month).label())

    def find_start_page(self, year: int, month: int) -> Optional[int]:
        entry = self.entry_for(year, month)
        return entry.start_page if entry else None

    def months(self) -> List[MonthKey]:
        """All indexed months, newest first"""
        return sorted((e.key for e in self.entries.values()), reverse=True)

    def sorted_entries(self) -> List[IndexEntry]:
        return sorted(self.entries.values(), key=lambda e: e.key, reverse=True)

    def __len__(self) -> int:
        return len(self.entries)
