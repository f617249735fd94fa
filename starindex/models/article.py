"""Starred article model parsed from Feedbin entry JSON."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict


class StarredArticle(BaseModel):
    """A starred Feedbin entry (only the fields the index needs)"""

    model_config = ConfigDict(extra="ignore")

    id: int
    published: Optional[datetime] = None
    title: Optional[str] = None
    url: Optional[str] = None
    author: Optional[str] = None
    feed_id: Optional[int] = None

    @property
    def published_utc(self) -> Optional[datetime]:
        """Publication time in UTC; naive timestamps are assumed UTC"""
        if self.published is None:
            return None
        if self.published.tzinfo is None:
            return self.published.replace(tzinfo=timezone.utc)
        return self.published.astimezone(timezone.utc)
