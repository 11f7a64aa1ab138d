from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

_site_tz: Optional[ZoneInfo] = None


def configure_site_timezone(name: Optional[str]) -> None:
    """Pin "today" to the site's calendar instead of the host's."""
    global _site_tz
    _site_tz = ZoneInfo(name) if name else None


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def parse_iso_datetime(value: str) -> datetime:
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is not None:
        dt = dt.astimezone(_site_tz).replace(tzinfo=None)
    return dt


def now_local() -> datetime:
    """Current site-local time (naive).

    Note: Wrapped so tests can patch/mocked easier.
    """
    if _site_tz is None:
        return datetime.now()
    return datetime.now(_site_tz).replace(tzinfo=None)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """[start, end) of a calendar day."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)

