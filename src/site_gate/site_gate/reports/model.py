from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Optional

from ..core.constants import NO_ACTIVITY_TIME
from ..core.enums import TimelineEvent
from ..visits.model import Visit


@dataclass(frozen=True)
class VisitSummary:
    visit: Visit
    borrowed_count: int
    returned_count: int

    @property
    def unreturned_count(self) -> int:
        return self.borrowed_count - self.returned_count


@dataclass(frozen=True)
class TimelineEntry:
    event: TimelineEvent
    at: Optional[time]
    label: str
    visit_id: Optional[int] = None
    record_id: Optional[int] = None

    @property
    def display_time(self) -> str:
        return self.at.strftime("%H:%M") if self.at else NO_ACTIVITY_TIME


@dataclass(frozen=True)
class SiteStats:
    """Read-side counters, recomputed from the ledgers on every call."""

    site_id: int
    day: date
    on_site_count: int
    entered_today: int
    exited_today: int
    borrowed_today: int
    pending_return: int
