"""
Data models for the job applier
Defines structure for listings, queries, filters and application outcomes
"""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator, model_validator


UNKNOWN = "Unknown"


class Listing(BaseModel):
    """A single job posting discovered on a board.

    `url` is the durable identity used by the store. `id` is the board's own
    posting key and is only trusted within a single crawl.
    """

    id: str
    title: str
    company: str = UNKNOWN
    location: str = UNKNOWN
    url: str
    description: str = ""
    source: str = "indeed"
    salary: Optional[str] = None
    posted_date: Optional[str] = None

    applied: bool = False
    applied_date: Optional[datetime] = None

    @field_validator("company", "location", mode="before")
    @classmethod
    def _placeholder_when_blank(cls, value):
        if value is None:
            return UNKNOWN
        text = str(value).strip()
        return text or UNKNOWN

    @model_validator(mode="after")
    def _id_falls_back_to_url(self):
        # Postings without a board key are identified by their url.
        if not self.id.strip():
            self.id = self.url
        return self

    @property
    def dedupe_key(self) -> str:
        return self.id or self.url

    def __str__(self) -> str:
        return f"{self.title} at {self.company} ({self.location})"


class SearchQuery(BaseModel):
    """One crawl's worth of search parameters"""

    keyword: str
    location: str
    radius: int = 25
    max_days_old: Optional[int] = 7
    max_pages: int = 5

    def __str__(self) -> str:
        return f"'{self.keyword}' in {self.location} (+{self.radius}mi)"


class ApplicationOutcome(BaseModel):
    """One application attempt. Never mutated once recorded."""

    job_id: str
    success: bool
    timestamp: datetime = Field(default_factory=datetime.now)
    error: Optional[str] = None


class JobFilter(BaseModel):
    """Predicates for JobStore.find_all"""

    source: Optional[str] = None
    applied: Optional[bool] = None
    company: Optional[str] = None
    location: Optional[str] = None
    limit: Optional[int] = None


class JobStats(BaseModel):
    total: int = 0
    applied: int = 0
    not_applied: int = 0
