from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence

from ..common.datetime_utils import now_local
from ..common.validators import optional_text, require_non_empty
from ..core.exceptions import (
    AlreadyOnSiteError,
    CardInUseError,
    DuplicateRecordError,
    NotFoundError,
    WorkerInactiveError,
)
from ..workers.model import Worker
from ..workers.service import DirectoryService
from .model import IdSnapshot, Visit, VisitFilter
from .repository import VisitRepository

logger = logging.getLogger(__name__)


class VisitService:
    """Entry registration and visit queries.

    Per (worker, site) a visit goes NONE -> ON_SITE -> LEFT; a later entry
    opens a fresh visit. Closing is the exit gate's job.
    """

    def __init__(self, visits: VisitRepository, directory: DirectoryService):
        self._visits = visits
        self._directory = directory

    def check_in(
        self,
        *,
        worker_code: str,
        site_id: int,
        physical_card_id: str,
        registrar_id: Optional[int],
        id_snapshot: Optional[IdSnapshot] = None,
        contact_phone: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Visit:
        now = now or now_local()

        worker = self._directory.resolve_worker(worker_code, site_id=site_id)
        if not worker.is_active:
            raise WorkerInactiveError(f"Worker {worker.worker_code} is inactive and may not enter")

        card = require_non_empty(physical_card_id, "Gate card")

        existing = self._visits.get_open_for_worker(worker.worker_pk, site_id=site_id)
        if existing:
            raise AlreadyOnSiteError(worker.worker_code, existing.check_in_time, visit_id=existing.visit_id)

        holder = self._visits.get_open_by_card(card, site_id=site_id)
        if holder:
            raise self._card_in_use(card, holder.worker_code)

        snapshot = id_snapshot or IdSnapshot(id_type=worker.id_type, id_number=worker.id_number)
        id_number = require_non_empty(snapshot.id_number, "Identity document number")
        phone = require_non_empty(optional_text(contact_phone) or worker.phone, "Contact phone")

        try:
            visit_id = self._visits.create(
                worker_pk=worker.worker_pk,
                site_id=int(site_id),
                check_in_time=now,
                physical_card_id=card,
                registrar_id=registrar_id,
                id_type=snapshot.id_type,
                id_number=id_number,
                phone=phone,
                notes=optional_text(notes),
            )
        except DuplicateRecordError as e:
            raise self._lost_race(e, worker=worker, site_id=site_id, card=card, now=now) from e

        logger.info(
            "check-in visit=%s worker=%s site=%s card=%s registrar=%s",
            visit_id, worker.worker_code, site_id, card, registrar_id,
        )
        return self.get_visit(visit_id)

    def _lost_race(self, err: DuplicateRecordError, *, worker: Worker, site_id: int, card: str, now: datetime):
        # Another gate committed first; report the rule it tripped.
        if err.details.get("key") == "uq_open_card":
            holder = self._visits.get_open_by_card(card, site_id=site_id)
            return self._card_in_use(card, holder.worker_code if holder else None)

        winner = self._visits.get_open_for_worker(worker.worker_pk, site_id=site_id)
        logger.info("check-in race lost worker=%s site=%s", worker.worker_code, site_id)
        if winner:
            return AlreadyOnSiteError(worker.worker_code, winner.check_in_time, visit_id=winner.visit_id)
        return AlreadyOnSiteError(worker.worker_code, now)

    @staticmethod
    def _card_in_use(card: str, holder_code: Optional[str]) -> CardInUseError:
        who = f" by worker {holder_code}" if holder_code else ""
        return CardInUseError(f"Gate card {card} is already issued{who}", details={"physicalCardId": card})

    def get_visit(self, visit_id: int) -> Visit:
        visit = self._visits.get_by_id(int(visit_id))
        if not visit:
            raise NotFoundError("Visit record does not exist")
        return visit

    def list_visits(self, flt: VisitFilter) -> Sequence[Visit]:
        return self._visits.list_visits(flt)

    def history_for_worker(self, identifier: str, *, site_id: Optional[int] = None, limit: int = 50) -> Sequence[Visit]:
        worker = self._directory.resolve_worker(identifier, site_id=site_id)
        return self._visits.list_visits(VisitFilter(site_id=site_id, worker_pk=worker.worker_pk, limit=limit))
