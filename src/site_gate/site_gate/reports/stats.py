from __future__ import annotations

from datetime import date
from typing import Optional

from ..common.datetime_utils import day_bounds, now_local
from ..custody.repository import BorrowRepository
from ..visits.repository import VisitRepository
from .model import SiteStats


class StatsService:
    def __init__(self, visits: VisitRepository, borrows: BorrowRepository):
        self._visits = visits
        self._borrows = borrows

    def snapshot(self, site_id: int, day: Optional[date] = None) -> SiteStats:
        """Counters for one site. `pending_return` is a backlog, not a daily count."""
        day = day or now_local().date()
        start, end = day_bounds(day)
        return SiteStats(
            site_id=int(site_id),
            day=day,
            on_site_count=self._visits.count_on_site(site_id=site_id),
            entered_today=self._visits.count_checked_in_between(site_id=site_id, start=start, end=end),
            exited_today=self._visits.count_checked_out_between(site_id=site_id, start=start, end=end),
            borrowed_today=self._borrows.count_borrowed_on(site_id=site_id, day=day),
            pending_return=self._borrows.count_outstanding(site_id=site_id),
        )
