from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class FeedbinSettings(BaseModel):
    """Feedbin API connection settings"""

    api_key: Optional[str] = Field(
        None, description="Pre-encoded Basic auth token (FEEDBIN_KEY)"
    )
    username: Optional[str] = Field(None, description="Feedbin account email")
    password: Optional[str] = Field(None, description="Feedbin account password")
    base_url: str = Field(
        "https://api.feedbin.com/v2", description="Feedbin API base URL"
    )
    per_page: int = Field(20, ge=1, le=100, description="Entries per page")
    timeout_seconds: float = Field(30.0, gt=0.0, le=300.0)

    @field_validator("api_key", "username", "password", mode="before")
    @classmethod
    def drop_unresolved_placeholders(cls, v: Optional[str]) -> Optional[str]:
        # safe_substitute leaves ${VAR} in place when VAR is unset
        if isinstance(v, str) and (not v.strip() or v.strip().startswith("${")):
            return None
        return v

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key) or bool(self.username and self.password)


class FetcherSettings(BaseModel):
    """Request pacing and rate-limit backoff"""

    base_delay_seconds: float = Field(
        0.5, ge=0.0, le=60.0, description="Delay before every request"
    )
    jitter_seconds: float = Field(
        0.25, ge=0.0, le=10.0, description="Max random jitter added to delays"
    )
    max_retries: int = Field(
        5, ge=0, le=20, description="Retries after a 429 before giving up"
    )
    backoff_base_seconds: float = Field(
        5.0, ge=0.0, le=300.0, description="Base delay for exponential backoff"
    )
    max_backoff_seconds: float = Field(
        120.0, ge=0.0, le=3600.0, description="Backoff delay cap"
    )

    @model_validator(mode="after")
    def validate_backoff_cap(self) -> "FetcherSettings":
        if self.max_backoff_seconds < self.backoff_base_seconds:
            raise ValueError("max_backoff_seconds must be >= backoff_base_seconds")
        return self


class IndexSettings(BaseModel):
    """Index build and storage settings"""

    index_path: str = Field(
        "data/feedbin-month-index.json", description="Persisted month index"
    )
    checkpoint_path: str = Field(
        "data/feedbin-month-index.checkpoint.json",
        description="Scan checkpoint for resumable builds",
    )
    earliest_year: int = Field(
        2013, ge=1970, le=9999, description="Scan stops once January of this year is seen"
    )
    checkpoint_interval: int = Field(
        10, ge=1, le=1000, description="Save checkpoint every N pages"
    )
    max_pages_per_run: Optional[int] = Field(
        None, ge=1, description="Stop and checkpoint after N pages (None: no limit)"
    )
    max_consecutive_failures: int = Field(
        5,
        ge=1,
        le=1000,
        description="Treat the feed as exhausted after N failed pages in a row "
        "when the starred count is unknown",
    )
    skip_rate_limited_pages: bool = Field(
        False, description="Skip a page whose retry budget ran out instead of stopping"
    )


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_output: bool = False


class StarIndexConfig(BaseModel):
    """Root configuration model"""

    model_config = ConfigDict(extra="forbid")

    feedbin: FeedbinSettings = Field(default_factory=lambda: FeedbinSettings())
    fetcher: FetcherSettings = Field(default_factory=lambda: FetcherSettings())
    index: IndexSettings = Field(default_factory=lambda: IndexSettings())
    logging: LoggingSettings = Field(default_factory=lambda: LoggingSettings())
