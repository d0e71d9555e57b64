"""Key names for raw page views and daily rollups in the key-value store."""

PAGEVIEW_INDEX = "pageviews"
DAILY_TOTAL_FIELD = "views"


def pageview(event_id: str) -> str:
    return f"pageview:{event_id}"


def daily_views(day: str) -> str:
    """Hash of path -> views for one day."""
    return f"daily_views:{day}"


def daily_total(day: str) -> str:
    """Hash holding the day's total under the ``views`` field."""
    return f"daily_total:{day}"


def unique_visitors(day: str) -> str:
    """Set of session ids seen on one day."""
    return f"unique_visitors:{day}"


def referrers(day: str) -> str:
    return f"referrers:{day}"


def countries(day: str) -> str:
    return f"countries:{day}"


def admin_session(session_id: str) -> str:
    return f"session:{session_id}"
