from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional, Sequence

from ..core.enums import BorrowStatus, ReturnResult


@dataclass(frozen=True)
class ItemCategory:
    """Reference data used to classify borrowed items."""

    category_id: int
    category_code: str
    category_name: str
    is_active: bool = True


@dataclass(frozen=True)
class BorrowRecord:
    """Domain entity: one item lent during exactly one visit.

    `visit_id` is bound at creation and never changes. Status is derived
    from `return_date`.
    """

    record_id: int
    worker_pk: int
    worker_code: str
    visit_id: int
    site_id: int
    category_id: int
    category_code: str
    category_name: str
    item_code: str
    borrow_date: date
    borrow_time: time
    return_date: Optional[date] = None
    return_time: Optional[time] = None
    notes: Optional[str] = None
    handler_id: Optional[int] = None

    @property
    def status(self) -> BorrowStatus:
        return BorrowStatus.BORROWED if self.return_date is None else BorrowStatus.RETURNED

    @property
    def is_open(self) -> bool:
        return self.return_date is None

    @property
    def borrowed_at(self) -> datetime:
        return datetime.combine(self.borrow_date, self.borrow_time)


@dataclass(frozen=True)
class StagedItem:
    """One entry of a borrow batch as staged by the operator.

    `category` is the category code (e.g. "HELMET") or its numeric id.
    """

    category: str
    item_code: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class BorrowOutcome:
    index: int
    category: str
    item_code: str
    record: Optional[BorrowRecord] = None
    code: Optional[str] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.record is not None


@dataclass(frozen=True)
class BorrowBatchResult:
    worker_code: str
    visit_id: int
    outcomes: Sequence[BorrowOutcome]

    @property
    def created(self) -> list[BorrowRecord]:
        return [o.record for o in self.outcomes if o.record is not None]

    @property
    def failed(self) -> list[BorrowOutcome]:
        return [o for o in self.outcomes if not o.ok]


@dataclass(frozen=True)
class ReturnOutcome:
    record_id: int
    result: ReturnResult
    record: Optional[BorrowRecord] = None

    @property
    def ok(self) -> bool:
        return self.result != ReturnResult.NOT_FOUND


@dataclass(frozen=True)
class BorrowFilter:
    worker_pk: Optional[int] = None
    visit_id: Optional[int] = None
    site_id: Optional[int] = None
    status: Optional[BorrowStatus] = None
    on_day: Optional[date] = None  # borrowed or returned that day
    limit: Optional[int] = 500
