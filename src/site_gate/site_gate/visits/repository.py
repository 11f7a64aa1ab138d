from __future__ import annotations

from datetime import datetime
from typing import Mapping, Optional, Protocol, Sequence

from ..core.enums import IdType
from .model import Visit, VisitFilter


class VisitRepository(Protocol):
    def get_by_id(self, visit_id: int) -> Optional[Visit]:
        raise NotImplementedError

    def get_open_for_worker(self, worker_pk: int, *, site_id: Optional[int] = None) -> Optional[Visit]:
        raise NotImplementedError

    def get_open_by_card(self, physical_card_id: str, *, site_id: Optional[int] = None) -> Optional[Visit]:
        raise NotImplementedError

    def create(
        self,
        *,
        worker_pk: int,
        site_id: int,
        check_in_time: datetime,
        physical_card_id: str,
        registrar_id: Optional[int],
        id_type: IdType,
        id_number: str,
        phone: Optional[str],
        notes: Optional[str] = None,
    ) -> int:
        """Insert an ON_SITE visit.

        Raises DuplicateRecordError when the store already holds an open visit
        for the worker at the site (key uq_open_visit) or the card is held
        (key uq_open_card).
        """

        raise NotImplementedError

    def close(self, *, visit_id: int, check_out_time: datetime, exit_remarks: Mapping[int, str]) -> bool:
        """ON_SITE -> LEFT, together with the borrow-record remarks.

        Returns False when the visit was no longer ON_SITE. Raises
        ExitDeniedError when, under the visit lock, an unreturned record of the
        visit has no entry in `exit_remarks`.
        """

        raise NotImplementedError

    def list_visits(self, flt: VisitFilter) -> Sequence[Visit]:
        raise NotImplementedError

    def count_on_site(self, *, site_id: int) -> int:
        raise NotImplementedError

    def count_checked_in_between(self, *, site_id: int, start: datetime, end: datetime) -> int:
        raise NotImplementedError

    def count_checked_out_between(self, *, site_id: int, start: datetime, end: datetime) -> int:
        raise NotImplementedError
