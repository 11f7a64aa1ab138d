from __future__ import annotations

from datetime import date, time
from typing import Optional, Protocol, Sequence

from .model import BorrowFilter, BorrowRecord, ItemCategory


class CategoryRepository(Protocol):
    def list_active(self) -> Sequence[ItemCategory]:
        raise NotImplementedError

    def get_by_id(self, category_id: int) -> Optional[ItemCategory]:
        raise NotImplementedError

    def get_by_code(self, category_code: str) -> Optional[ItemCategory]:
        raise NotImplementedError


class BorrowRepository(Protocol):
    def create(
        self,
        *,
        worker_pk: int,
        visit_id: int,
        category_id: int,
        item_code: str,
        borrow_date: date,
        borrow_time: time,
        notes: Optional[str] = None,
        handler_id: Optional[int] = None,
    ) -> int:
        """Insert a BORROWED record; NotOnSiteError when the visit is no longer open for that worker."""

        raise NotImplementedError

    def get_by_id(self, record_id: int) -> Optional[BorrowRecord]:
        raise NotImplementedError

    def mark_returned(self, *, record_id: int, return_date: date, return_time: time) -> bool:
        """Set the return stamp only while it is still empty."""

        raise NotImplementedError

    def list_records(self, flt: BorrowFilter) -> Sequence[BorrowRecord]:
        raise NotImplementedError

    def list_for_visits(self, visit_ids: Sequence[int]) -> Sequence[BorrowRecord]:
        raise NotImplementedError

    def count_borrowed_on(self, *, site_id: int, day: date) -> int:
        raise NotImplementedError

    def count_outstanding(self, *, site_id: int) -> int:
        raise NotImplementedError
