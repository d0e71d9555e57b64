"""
Analytics reporting over a trailing window of days.

Reads the daily rollups written by the recorder and merges them into an
AnalyticsSummary. Every call rescans the window; nothing is cached.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable

from . import keys
from .coerce import to_counter_map, to_int, to_str_list
from .models import AnalyticsSummary, CountryStats, DailyViews, PageStats, ReferrerStats
from .store import KeyValueStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def window_dates(end: date, days: int) -> list[date]:
    """The `days` calendar days ending at (and including) `end`, ascending."""
    start = end - timedelta(days=days - 1)
    return [start + timedelta(days=offset) for offset in range(days)]


def merge_counts(into: dict[str, int], counts: dict[str, int]) -> None:
    """Add `counts` into the running totals, keeping first-seen key order."""
    for key, count in counts.items():
        into[key] = into.get(key, 0) + count


def rank(counts: dict[str, int], limit: int) -> list[tuple[str, int]]:
    """Highest counts first; ties keep the order in which keys were first seen."""
    return sorted(counts.items(), key=lambda item: -item[1])[:limit]


def percentage(views: int, total: int) -> int:
    """views / total as a whole percentage, rounding halves up."""
    if total <= 0:
        return 0
    return (views * 200 + total) // (2 * total)


class AnalyticsReporter:
    """Builds analytics summaries from the daily rollups."""

    def __init__(
        self,
        store: KeyValueStore,
        top_n: int = 10,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.top_n = top_n
        self.clock = clock

    async def get_analytics(self, days: int = 7) -> AnalyticsSummary:
        """
        Summarize the last `days` calendar days, today (UTC) included.

        Never raises: a day that can't be read is skipped, and anything
        unexpected yields an empty summary.
        """
        try:
            return await self._summarize(days)
        except Exception as e:
            logger.error(f"Error getting analytics: {e}")
            return AnalyticsSummary.empty()

    async def _summarize(self, days: int) -> AnalyticsSummary:
        if days < 1:
            raise ValueError(f"days must be a positive integer, got {days}")

        today = self.clock().astimezone(timezone.utc).date()

        total_page_views = 0
        unique_visitors = 0
        daily_views: list[DailyViews] = []
        pages: dict[str, int] = {}
        referrers: dict[str, int] = {}
        countries: dict[str, int] = {}

        for day in window_dates(today, days):
            day_str = day.isoformat()
            try:
                views = to_int(await self.store.hget(keys.daily_total(day_str), keys.DAILY_TOTAL_FIELD))
                total_page_views += views
                daily_views.append(DailyViews(date=day_str, views=views))

                visitors = to_str_list(await self.store.smembers(keys.unique_visitors(day_str)))
                unique_visitors += len(visitors)

                merge_counts(pages, to_counter_map(await self.store.hgetall(keys.daily_views(day_str))))
                merge_counts(referrers, to_counter_map(await self.store.hgetall(keys.referrers(day_str))))
                merge_counts(countries, to_counter_map(await self.store.hgetall(keys.countries(day_str))))
            except Exception as e:
                logger.error(f"Error processing date {day_str}: {e}")
                # Keep the series gap-free even when the day's reads failed
                if not daily_views or daily_views[-1].date != day_str:
                    daily_views.append(DailyViews(date=day_str, views=0))

        total_country_views = sum(countries.values())

        return AnalyticsSummary(
            total_page_views=total_page_views,
            unique_visitors=unique_visitors,
            top_pages=[PageStats(path=path, views=views) for path, views in rank(pages, self.top_n)],
            daily_views=daily_views,
            referrers=[
                ReferrerStats(source=source, views=views)
                for source, views in rank(referrers, self.top_n)
            ],
            countries=[
                CountryStats(
                    country=country,
                    views=views,
                    percentage=percentage(views, total_country_views),
                )
                for country, views in rank(countries, self.top_n)
            ],
        )
