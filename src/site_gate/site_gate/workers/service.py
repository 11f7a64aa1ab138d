from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..common.validators import require_non_empty
from ..core.exceptions import NoOpenVisitError, NotFoundError
from ..visits.model import Visit
from ..visits.repository import VisitRepository
from .model import Worker
from .repository import WorkerRepository


@dataclass(frozen=True)
class OpenVisit:
    worker: Worker
    visit: Visit


class DirectoryService:
    """Answers "who is this" and "are they on site" for every gate flow.

    A scanned identifier may be a worker code (QR badge) or a card code. One
    resolver handles both so entry, borrow and exit validate identically.
    """

    def __init__(self, workers: WorkerRepository, visits: VisitRepository):
        self._workers = workers
        self._visits = visits

    def resolve_worker(self, identifier: str, *, site_id: Optional[int] = None) -> Worker:
        ident = require_non_empty(identifier, "Worker code or card code")

        worker = self._workers.get_by_code(ident)
        if worker:
            return worker

        worker = self._workers.get_by_card(ident)
        if worker:
            return worker

        # A gate card identifies its holder while the visit it was issued for is open.
        visit = self._visits.get_open_by_card(ident, site_id=site_id)
        if visit:
            worker = self._workers.get_by_pk(visit.worker_pk)
            if worker:
                return worker

        raise NotFoundError(f"No worker found for code or card '{ident}'")

    def find_open_visit(self, identifier: str, *, site_id: Optional[int] = None) -> OpenVisit:
        worker = self.resolve_worker(identifier, site_id=site_id)
        visit = self._visits.get_open_for_worker(worker.worker_pk, site_id=site_id)
        if not visit:
            raise NoOpenVisitError(
                f"Worker {worker.worker_code} ({worker.full_name}) is not on site",
                details={"workerId": worker.worker_code},
            )
        return OpenVisit(worker=worker, visit=visit)
