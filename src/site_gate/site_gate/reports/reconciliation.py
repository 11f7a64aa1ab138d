from __future__ import annotations

from collections import Counter
from datetime import date, time
from typing import Optional, Sequence

from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.enums import TimelineEvent
from ..core.exceptions import NotFoundError
from ..custody.model import BorrowFilter
from ..custody.repository import BorrowRepository
from ..visits.model import Visit, VisitFilter
from ..visits.repository import VisitRepository
from ..workers.service import DirectoryService
from .model import TimelineEntry, VisitSummary


class ReconciliationService:
    """Joins the visit ledger and the custody ledger by visit id.

    Records are never attributed by worker alone: a worker with several
    visits gets each visit's own counts.
    """

    def __init__(self, visits: VisitRepository, borrows: BorrowRepository, directory: DirectoryService):
        self._visits = visits
        self._borrows = borrows
        self._directory = directory

    def visit_summaries(self, visits: Sequence[Visit]) -> list[VisitSummary]:
        ids = [v.visit_id for v in visits]
        borrowed: Counter[int] = Counter()
        returned: Counter[int] = Counter()
        for rec in self._borrows.list_for_visits(ids):
            borrowed[rec.visit_id] += 1
            if not rec.is_open:
                returned[rec.visit_id] += 1

        return [
            VisitSummary(visit=v, borrowed_count=borrowed[v.visit_id], returned_count=returned[v.visit_id])
            for v in visits
        ]

    def summary_for_visit(self, visit_id: int, *, site_id: Optional[int] = None) -> VisitSummary:
        visit = self._visits.get_by_id(int(visit_id))
        if not visit or (site_id is not None and visit.site_id != int(site_id)):
            raise NotFoundError("Visit record does not exist")
        return self.visit_summaries([visit])[0]

    def daily_timeline(self, identifier: str, day: date, *, site_id: Optional[int] = None) -> list[TimelineEntry]:
        """All of a worker's gate and custody events on `day`, earliest first.

        Never empty: a day without events yields one NO_ACTIVITY entry.
        """
        worker = self._directory.resolve_worker(identifier, site_id=site_id)
        entries: list[TimelineEntry] = []

        visits = self._visits.list_visits(
            VisitFilter(site_id=site_id, worker_pk=worker.worker_pk, today_relevant=day, limit=DEFAULT_HISTORY_LIMIT)
        )
        for v in visits:
            if v.check_in_time.date() == day:
                entries.append(
                    TimelineEntry(
                        event=TimelineEvent.CHECK_IN,
                        at=v.check_in_time.time(),
                        label=f"Checked in with card {v.physical_card_id}",
                        visit_id=v.visit_id,
                    )
                )
            if v.check_out_time and v.check_out_time.date() == day:
                entries.append(
                    TimelineEntry(event=TimelineEvent.CHECK_OUT, at=v.check_out_time.time(), label="Checked out", visit_id=v.visit_id)
                )

        records = self._borrows.list_records(
            BorrowFilter(worker_pk=worker.worker_pk, site_id=site_id, on_day=day, limit=None)
        )
        for r in records:
            item = f"{r.category_name} {r.item_code}"
            if r.borrow_date == day:
                entries.append(
                    TimelineEntry(
                        event=TimelineEvent.BORROW, at=r.borrow_time, label=f"Borrowed {item}",
                        visit_id=r.visit_id, record_id=r.record_id,
                    )
                )
            if r.return_date == day:
                entries.append(
                    TimelineEntry(
                        event=TimelineEvent.RETURN, at=r.return_time, label=f"Returned {item}",
                        visit_id=r.visit_id, record_id=r.record_id,
                    )
                )

        if not entries:
            return [TimelineEntry(event=TimelineEvent.NO_ACTIVITY, at=None, label="No activity")]

        entries.sort(key=lambda e: e.at or time.min)
        return entries
