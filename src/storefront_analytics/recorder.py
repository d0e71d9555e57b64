"""
Page-view recording.

Each page view is stored once as a raw record (for audit) and folded into
five per-day rollups that the reporter reads:

    daily_views:{date}      hash  path -> views
    daily_total:{date}      hash  "views" -> views
    unique_visitors:{date}  set   session ids
    referrers:{date}        hash  referrer -> views (non-empty referrers only)
    countries:{date}        hash  country -> views

Writes are independent increments, not a transaction; a failure part-way
leaves the event partially recorded. Recording never raises to the caller.
"""

import asyncio
import logging
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Callable

from . import keys
from .geo import UNKNOWN_COUNTRY, CountryResolver
from .models import PageView, PageViewInput
from .store import KeyValueStore

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_event_id(now: datetime | None = None) -> str:
    """Millisecond timestamp plus a random base36 suffix."""
    millis = int((now.timestamp() if now else time.time()) * 1000)
    token = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{millis}_{token}"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp to an aware UTC datetime, or None."""
    if not value or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def day_key(timestamp: str) -> str:
    """The UTC calendar day (YYYY-MM-DD) a normalized timestamp falls on."""
    return timestamp.split("T", 1)[0]


class EventRecorder:
    """Records page views into the key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        resolver: CountryResolver,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.resolver = resolver
        self.clock = clock
        self._pending: set[asyncio.Task] = set()

    async def record_page_view(self, event: PageViewInput | dict[str, Any]) -> PageView | None:
        """Record one page view.

        Returns the normalized record that was (at least partly) written, or
        None if the input couldn't be understood at all. Never raises.
        """
        try:
            page_view = await self._normalize(event)
        except Exception as e:
            logger.error(f"Error preparing page view: {e}")
            return None

        try:
            await self._write(page_view)
        except Exception as e:
            logger.error(f"Error tracking page view {page_view.id}: {e}")
        return page_view

    def record_in_background(self, event: PageViewInput | dict[str, Any]) -> asyncio.Task:
        """Schedule record_page_view without waiting for it.

        Must be called from inside a running event loop.
        """
        task = asyncio.create_task(self.record_page_view(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every background recording scheduled so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _normalize(self, event: PageViewInput | dict[str, Any]) -> PageView:
        data = event if isinstance(event, PageViewInput) else PageViewInput.model_validate(event)
        now = self.clock()

        moment = parse_timestamp(data.timestamp)
        if moment is None:
            if data.timestamp:
                logger.warning(f"Unparseable page view timestamp {data.timestamp!r}, using now")
            moment = now

        ip = (data.ip or "").strip() or "unknown"
        try:
            country = await self.resolver.resolve_country(ip)
        except Exception as e:
            logger.warning(f"Country lookup failed, recording as {UNKNOWN_COUNTRY}: {e}")
            country = UNKNOWN_COUNTRY

        return PageView(
            id=new_event_id(now),
            path=data.path or "/",
            user_agent=data.user_agent or "",
            ip=ip,
            country=country,
            referrer=data.referrer or "",
            timestamp=format_timestamp(moment),
            session_id=data.session_id or "",
            user_id=data.user_id or "",
        )

    async def _write(self, page_view: PageView) -> None:
        await self.store.hset(keys.pageview(page_view.id), page_view.to_hash())
        await self.store.sadd(keys.PAGEVIEW_INDEX, page_view.id)

        day = day_key(page_view.timestamp)
        await self.store.hincrby(keys.daily_views(day), page_view.path, 1)
        await self.store.hincrby(keys.daily_total(day), keys.DAILY_TOTAL_FIELD, 1)
        await self.store.sadd(keys.unique_visitors(day), page_view.session_id)
        if page_view.referrer.strip():
            await self.store.hincrby(keys.referrers(day), page_view.referrer, 1)
        await self.store.hincrby(keys.countries(day), page_view.country, 1)
