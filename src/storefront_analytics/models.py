"""Pydantic models for analytics data.

Attributes are snake_case; the JSON shape consumed by the dashboard is
camelCase, so dump with ``model_dump(by_alias=True)``.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PageViewInput(_CamelModel):
    """A page-view as reported by the browser. Every field is optional."""

    path: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    ip: str | None = None
    timestamp: str | None = None  # ISO-8601
    session_id: str | None = None
    user_id: str | None = None


class PageView(_CamelModel):
    """A single recorded page view. Written once, never updated."""

    id: str
    path: str = "/"
    user_agent: str = ""
    ip: str = "unknown"
    country: str = "Unknown"
    referrer: str = ""
    timestamp: str  # ISO-8601, UTC
    session_id: str = ""
    user_id: str = ""

    def to_hash(self) -> dict[str, str]:
        """Flatten to the string field-bag stored at ``pageview:{id}``."""
        return {key: str(value) for key, value in self.model_dump(by_alias=True).items()}


# =============================================================================
# Report Models
# =============================================================================

class PageStats(_CamelModel):
    """Views for a single path."""
    path: str
    views: int


class DailyViews(_CamelModel):
    """Views for a single calendar day (YYYY-MM-DD)."""
    date: str
    views: int


class ReferrerStats(_CamelModel):
    """Views attributed to a referrer."""
    source: str
    views: int


class CountryStats(_CamelModel):
    """Views from a country, with its share of all country views (0-100)."""
    country: str
    views: int
    percentage: int


class AnalyticsSummary(_CamelModel):
    """Summary over a trailing window of days. Derived, never persisted."""

    total_page_views: int = 0
    # Sum of per-day distinct sessions; a visitor seen on two days counts twice
    unique_visitors: int = 0
    top_pages: list[PageStats] = Field(default_factory=list)
    daily_views: list[DailyViews] = Field(default_factory=list)
    referrers: list[ReferrerStats] = Field(default_factory=list)
    countries: list[CountryStats] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "AnalyticsSummary":
        return cls()
