from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ..core.enums import IdType, VisitStatus


@dataclass(frozen=True)
class IdSnapshot:
    """Identity document as presented at the gate, frozen on the visit."""

    id_type: IdType
    id_number: str


@dataclass(frozen=True)
class Visit:
    """Domain entity: one on-site presence episode of a worker."""

    visit_id: int
    worker_pk: int
    worker_code: str
    worker_name: str
    site_id: int
    check_in_time: datetime
    check_out_time: Optional[datetime]
    status: VisitStatus
    physical_card_id: str
    id_type: IdType
    id_number: str
    registrar_id: Optional[int] = None
    phone: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status == VisitStatus.ON_SITE


@dataclass(frozen=True)
class VisitFilter:
    """List filter for the visit ledger.

    `today_relevant` wins over the other date filters: visits checked in on
    that day, checked out on that day, or still on site.
    """

    site_id: Optional[int] = None
    worker_pk: Optional[int] = None
    status: Optional[VisitStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    check_out_start: Optional[date] = None
    check_out_end: Optional[date] = None
    today_relevant: Optional[date] = None
    limit: int = 200
