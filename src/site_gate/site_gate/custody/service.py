from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional, Sequence

from ..common.datetime_utils import now_local
from ..common.validators import optional_text, require_non_empty
from ..core.enums import ReturnResult
from ..core.exceptions import (
    DomainError,
    NoOpenVisitError,
    NotFoundError,
    NotOnSiteError,
    UnknownCategoryError,
    ValidationError,
)
from ..visits.model import Visit
from ..visits.repository import VisitRepository
from ..workers.service import DirectoryService
from .model import (
    BorrowBatchResult,
    BorrowFilter,
    BorrowOutcome,
    BorrowRecord,
    ItemCategory,
    ReturnOutcome,
    StagedItem,
)
from .repository import BorrowRepository, CategoryRepository

logger = logging.getLogger(__name__)


class CustodyService:
    """Borrow/return ledger. Every record is bound to one open visit."""

    def __init__(
        self,
        borrows: BorrowRepository,
        categories: CategoryRepository,
        visits: VisitRepository,
        directory: DirectoryService,
    ):
        self._borrows = borrows
        self._categories = categories
        self._visits = visits
        self._directory = directory

    # -------- reference data --------
    def list_categories(self) -> Sequence[ItemCategory]:
        return self._categories.list_active()

    def resolve_category(self, ref) -> ItemCategory:
        key = str(ref or "").strip()
        if not key:
            raise UnknownCategoryError("Item category is required")

        category = None
        if key.isdigit():
            category = self._categories.get_by_id(int(key))
        if category is None:
            category = self._categories.get_by_code(key)
        if category is None or not category.is_active:
            raise UnknownCategoryError(f"Unknown item category '{key}'")
        return category

    # -------- borrow --------
    def _require_open_visit(self, visit_id: int, worker_pk: int, site_id: Optional[int] = None) -> Visit:
        visit = self._visits.get_by_id(int(visit_id))
        if (
            not visit
            or not visit.is_open
            or visit.worker_pk != int(worker_pk)
            or (site_id is not None and visit.site_id != int(site_id))
        ):
            raise NotOnSiteError("Worker is not on site; items can only be lent during an open visit")
        return visit

    def borrow(
        self,
        *,
        visit_id: int,
        worker_pk: int,
        category: str,
        item_code: str,
        notes: Optional[str] = None,
        handler_id: Optional[int] = None,
        site_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> BorrowRecord:
        visit = self._require_open_visit(visit_id, worker_pk, site_id)
        return self._create(visit, StagedItem(category=category, item_code=item_code, notes=notes), handler_id, now or now_local())

    def _create(self, visit: Visit, item: StagedItem, handler_id: Optional[int], now: datetime) -> BorrowRecord:
        cat = self.resolve_category(item.category)
        code = require_non_empty(item.item_code, "Item code")
        return self._insert(visit, cat, code, item.notes, handler_id, now)

    def _insert(
        self, visit: Visit, cat: ItemCategory, code: str, notes: Optional[str], handler_id: Optional[int], now: datetime
    ) -> BorrowRecord:
        record_id = self._borrows.create(
            worker_pk=visit.worker_pk,
            visit_id=visit.visit_id,
            category_id=cat.category_id,
            item_code=code,
            borrow_date=now.date(),
            borrow_time=now.time().replace(microsecond=0),
            notes=optional_text(notes),
            handler_id=handler_id,
        )
        logger.info(
            "borrow record=%s visit=%s worker=%s item=%s/%s",
            record_id, visit.visit_id, visit.worker_code, cat.category_code, code,
        )
        record = self._borrows.get_by_id(record_id)
        if record is None:
            raise NotFoundError("Borrow record vanished after insert")
        return record

    def borrow_batch(
        self,
        *,
        visit_id: int,
        worker_pk: int,
        items: Sequence[StagedItem],
        handler_id: Optional[int] = None,
        site_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> BorrowBatchResult:
        """Commit a staged batch; each item succeeds or fails on its own."""
        now = now or now_local()
        visit = self._require_open_visit(visit_id, worker_pk, site_id)

        outcomes: list[BorrowOutcome] = []
        # (category_id, item_code) of items already lent in this batch
        seen: set[tuple[int, str]] = set()
        for index, item in enumerate(items):
            try:
                cat = self.resolve_category(item.category)
                code = require_non_empty(item.item_code, "Item code")
                if (cat.category_id, code) in seen:
                    raise ValidationError(
                        f"Item {cat.category_code}/{code} is already in this batch", code="DUPLICATE_ITEM"
                    )
                record = self._insert(visit, cat, code, item.notes, handler_id, now)
                seen.add((cat.category_id, code))
            except DomainError as e:
                logger.info("borrow rejected visit=%s item=%s/%s: %s", visit.visit_id, item.category, item.item_code, e.code)
                outcomes.append(
                    BorrowOutcome(index=index, category=item.category, item_code=item.item_code, code=e.code, message=e.message)
                )
                continue
            except Exception:
                logger.exception("borrow failed visit=%s item=%s/%s", visit.visit_id, item.category, item.item_code)
                outcomes.append(
                    BorrowOutcome(
                        index=index,
                        category=item.category,
                        item_code=item.item_code,
                        code="INTERNAL",
                        message="System error while saving this item",
                    )
                )
                continue
            outcomes.append(BorrowOutcome(index=index, category=item.category, item_code=item.item_code, record=record))

        return BorrowBatchResult(worker_code=visit.worker_code, visit_id=visit.visit_id, outcomes=outcomes)

    def borrow_for_worker(
        self,
        identifier: str,
        items: Sequence[StagedItem],
        *,
        site_id: Optional[int] = None,
        handler_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> BorrowBatchResult:
        """Resolve the worker's open visit once, then commit the batch against it."""
        try:
            open_visit = self._directory.find_open_visit(identifier, site_id=site_id)
        except NoOpenVisitError as e:
            raise NotOnSiteError(e.message, details=e.details) from e

        return self.borrow_batch(
            visit_id=open_visit.visit.visit_id,
            worker_pk=open_visit.worker.worker_pk,
            items=items,
            handler_id=handler_id,
            site_id=site_id,
            now=now,
        )

    # -------- return --------
    def _return(self, record_id: int, *, site_id: Optional[int], now: datetime) -> ReturnOutcome:
        record = self._borrows.get_by_id(int(record_id))
        if record is None or (site_id is not None and record.site_id != int(site_id)):
            return ReturnOutcome(record_id=int(record_id), result=ReturnResult.NOT_FOUND)

        if not record.is_open:
            return ReturnOutcome(record_id=record.record_id, result=ReturnResult.ALREADY_RETURNED, record=record)

        changed = self._borrows.mark_returned(
            record_id=record.record_id,
            return_date=now.date(),
            return_time=now.time().replace(microsecond=0),
        )
        result = ReturnResult.RETURNED if changed else ReturnResult.ALREADY_RETURNED
        if changed:
            logger.info("return record=%s visit=%s item=%s", record.record_id, record.visit_id, record.item_code)
        return ReturnOutcome(record_id=record.record_id, result=result, record=self._borrows.get_by_id(record.record_id))

    def return_one(self, record_id: int, *, site_id: Optional[int] = None, now: Optional[datetime] = None) -> ReturnOutcome:
        outcome = self._return(record_id, site_id=site_id, now=now or now_local())
        if outcome.result == ReturnResult.NOT_FOUND:
            raise NotFoundError(f"Borrow record {record_id} does not exist")
        return outcome

    def return_many(
        self,
        record_ids: Iterable[int],
        *,
        site_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[ReturnOutcome]:
        now = now or now_local()
        out: list[ReturnOutcome] = []
        for rid in dict.fromkeys(int(r) for r in record_ids):
            out.append(self._return(rid, site_id=site_id, now=now))
        return out

    # -------- queries --------
    def open_items_for_visit(self, visit_id: int) -> Sequence[BorrowRecord]:
        return [r for r in self._borrows.list_for_visits([int(visit_id)]) if r.is_open]

    def list_records(self, flt: BorrowFilter) -> Sequence[BorrowRecord]:
        return self._borrows.list_records(flt)
