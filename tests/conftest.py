from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from typing import Mapping, Optional, Sequence

import pytest
from werkzeug.security import generate_password_hash

from src.site_gate.site_gate.container import Container, wire
from src.site_gate.site_gate.core.constants import EXIT_REMARK_PREFIX
from src.site_gate.site_gate.core.enums import BorrowStatus, IdType, VisitStatus, WorkerStatus
from src.site_gate.site_gate.core.exceptions import DuplicateRecordError, ExitDeniedError, NotOnSiteError
from src.site_gate.site_gate.custody.model import BorrowFilter, BorrowRecord, ItemCategory
from src.site_gate.site_gate.exit_gate.rules import missing_remark
from src.site_gate.site_gate.guards.model import Guard
from src.site_gate.site_gate.guards.service import AuthService
from src.site_gate.site_gate.notifications.dispatch_queue import DispatchQueue
from src.site_gate.site_gate.visits.model import Visit, VisitFilter
from src.site_gate.site_gate.workers.model import Worker

SITE_ID = 1
OTHER_SITE_ID = 2


class InMemoryWorkers:
    def __init__(self, workers: Sequence[Worker] = ()):
        self._by_pk = {w.worker_pk: w for w in workers}

    def get_by_pk(self, worker_pk: int) -> Optional[Worker]:
        return self._by_pk.get(worker_pk)

    def get_by_code(self, worker_code: str) -> Optional[Worker]:
        return next((w for w in self._by_pk.values() if w.worker_code == worker_code), None)

    def get_by_card(self, physical_card_id: str) -> Optional[Worker]:
        return next((w for w in self._by_pk.values() if w.physical_card_id == physical_card_id), None)


class InMemoryVisits:
    """Mirrors the unique keys of the visits table (one open visit per worker/site and per card/site)."""

    def __init__(self, workers: InMemoryWorkers):
        self._workers = workers
        self._rows: dict[int, Visit] = {}
        self._id = 0
        self.borrows: Optional["InMemoryBorrows"] = None

    def all(self) -> list[Visit]:
        return list(self._rows.values())

    def get_by_id(self, visit_id: int) -> Optional[Visit]:
        return self._rows.get(visit_id)

    def _open(self, site_id: Optional[int]):
        return [
            v for v in self._rows.values()
            if v.status == VisitStatus.ON_SITE and (site_id is None or v.site_id == site_id)
        ]

    def get_open_for_worker(self, worker_pk: int, *, site_id: Optional[int] = None) -> Optional[Visit]:
        return next((v for v in self._open(site_id) if v.worker_pk == worker_pk), None)

    def get_open_by_card(self, physical_card_id: str, *, site_id: Optional[int] = None) -> Optional[Visit]:
        return next((v for v in self._open(site_id) if v.physical_card_id == physical_card_id), None)

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
        if self.get_open_for_worker(worker_pk, site_id=site_id):
            raise DuplicateRecordError("Duplicate entry", details={"key": "uq_open_visit"})
        if self.get_open_by_card(physical_card_id, site_id=site_id):
            raise DuplicateRecordError("Duplicate entry", details={"key": "uq_open_card"})

        worker = self._workers.get_by_pk(worker_pk)
        self._id += 1
        self._rows[self._id] = Visit(
            visit_id=self._id,
            worker_pk=worker_pk,
            worker_code=worker.worker_code,
            worker_name=worker.full_name,
            site_id=site_id,
            check_in_time=check_in_time,
            check_out_time=None,
            status=VisitStatus.ON_SITE,
            physical_card_id=physical_card_id,
            id_type=id_type,
            id_number=id_number,
            registrar_id=registrar_id,
            phone=phone,
            notes=notes,
        )
        return self._id

    def close(self, *, visit_id: int, check_out_time: datetime, exit_remarks: Mapping[int, str]) -> bool:
        visit = self._rows.get(visit_id)
        if not visit or visit.status != VisitStatus.ON_SITE:
            return False
        unremarked = [r for r in self.borrows.all() if r.visit_id == visit_id and r.is_open and r.record_id not in exit_remarks]
        if unremarked:
            raise ExitDeniedError([missing_remark(r.item_code) for r in unremarked])
        self._rows[visit_id] = replace(visit, status=VisitStatus.LEFT, check_out_time=check_out_time)
        for record_id, remark in exit_remarks.items():
            self.borrows.append_note(record_id, visit_id, EXIT_REMARK_PREFIX + remark)
        return True

    def list_visits(self, flt: VisitFilter) -> list[Visit]:
        def keep(v: Visit) -> bool:
            if flt.site_id is not None and v.site_id != flt.site_id:
                return False
            if flt.worker_pk is not None and v.worker_pk != flt.worker_pk:
                return False
            if flt.today_relevant is not None:
                day = flt.today_relevant
                return (
                    v.check_in_time.date() == day
                    or (v.check_out_time is not None and v.check_out_time.date() == day)
                    or v.status == VisitStatus.ON_SITE
                )
            if flt.status is not None and v.status != flt.status:
                return False
            if flt.start_date is not None and v.check_in_time.date() < flt.start_date:
                return False
            if flt.end_date is not None and v.check_in_time.date() > flt.end_date:
                return False
            out_day = v.check_out_time.date() if v.check_out_time else None
            if flt.check_out_start is not None and (out_day is None or out_day < flt.check_out_start):
                return False
            if flt.check_out_end is not None and (out_day is None or out_day > flt.check_out_end):
                return False
            return True

        rows = sorted((v for v in self._rows.values() if keep(v)), key=lambda v: v.check_in_time, reverse=True)
        return rows[: flt.limit]

    def count_on_site(self, *, site_id: int) -> int:
        return len(self._open(site_id))

    def count_checked_in_between(self, *, site_id: int, start: datetime, end: datetime) -> int:
        return sum(1 for v in self._rows.values() if v.site_id == site_id and start <= v.check_in_time < end)

    def count_checked_out_between(self, *, site_id: int, start: datetime, end: datetime) -> int:
        return sum(
            1 for v in self._rows.values()
            if v.site_id == site_id and v.check_out_time is not None and start <= v.check_out_time < end
        )


class InMemoryCategories:
    def __init__(self, categories: Sequence[ItemCategory]):
        self._rows = list(categories)

    def list_active(self) -> list[ItemCategory]:
        return [c for c in self._rows if c.is_active]

    def get_by_id(self, category_id: int) -> Optional[ItemCategory]:
        return next((c for c in self._rows if c.category_id == category_id), None)

    def get_by_code(self, category_code: str) -> Optional[ItemCategory]:
        # MySQL's default collation compares codes case-insensitively
        return next((c for c in self._rows if c.category_code.lower() == category_code.lower()), None)


class InMemoryBorrows:
    def __init__(self, workers: InMemoryWorkers, visits: InMemoryVisits, categories: InMemoryCategories):
        self._workers = workers
        self._visits = visits
        self._categories = categories
        self._rows: dict[int, BorrowRecord] = {}
        self._id = 0
        visits.borrows = self

    def all(self) -> list[BorrowRecord]:
        return list(self._rows.values())

    def create(self, *, worker_pk, visit_id, category_id, item_code, borrow_date, borrow_time, notes=None, handler_id=None) -> int:
        worker = self._workers.get_by_pk(worker_pk)
        visit = self._visits.get_by_id(visit_id)
        if not visit or visit.status != VisitStatus.ON_SITE or visit.worker_pk != worker_pk:
            raise NotOnSiteError("Visit is no longer open; nothing was lent")
        cat = self._categories.get_by_id(category_id)
        self._id += 1
        self._rows[self._id] = BorrowRecord(
            record_id=self._id,
            worker_pk=worker_pk,
            worker_code=worker.worker_code,
            visit_id=visit_id,
            site_id=visit.site_id,
            category_id=category_id,
            category_code=cat.category_code,
            category_name=cat.category_name,
            item_code=item_code,
            borrow_date=borrow_date,
            borrow_time=borrow_time,
            notes=notes,
            handler_id=handler_id,
        )
        return self._id

    def get_by_id(self, record_id: int) -> Optional[BorrowRecord]:
        return self._rows.get(record_id)

    def mark_returned(self, *, record_id, return_date, return_time) -> bool:
        rec = self._rows.get(record_id)
        if not rec or rec.return_date is not None:
            return False
        self._rows[record_id] = replace(rec, return_date=return_date, return_time=return_time)
        return True

    def append_note(self, record_id: int, visit_id: int, text: str) -> None:
        rec = self._rows.get(record_id)
        if rec and rec.visit_id == visit_id:
            notes = f"{rec.notes} | {text}" if rec.notes else text
            self._rows[record_id] = replace(rec, notes=notes)

    def list_records(self, flt: BorrowFilter) -> list[BorrowRecord]:
        out = []
        for r in self._rows.values():
            if flt.worker_pk is not None and r.worker_pk != flt.worker_pk:
                continue
            if flt.visit_id is not None and r.visit_id != flt.visit_id:
                continue
            if flt.site_id is not None and r.site_id != flt.site_id:
                continue
            if flt.status is not None and r.status != flt.status:
                continue
            if flt.on_day is not None and flt.on_day not in (r.borrow_date, r.return_date):
                continue
            out.append(r)
        out.sort(key=lambda r: r.borrowed_at, reverse=True)
        return out[: flt.limit]

    def list_for_visits(self, visit_ids: Sequence[int]) -> list[BorrowRecord]:
        ids = set(visit_ids)
        return [r for r in self._rows.values() if r.visit_id in ids]

    def count_borrowed_on(self, *, site_id: int, day: date) -> int:
        return sum(1 for r in self._rows.values() if r.site_id == site_id and r.borrow_date == day)

    def count_outstanding(self, *, site_id: int) -> int:
        return sum(1 for r in self._rows.values() if r.site_id == site_id and r.status == BorrowStatus.BORROWED)


class InMemoryGuards:
    def __init__(self, guards: Sequence[Guard]):
        self._rows = {g.guard_id: g for g in guards}

    def get_by_id(self, guard_id: int) -> Optional[Guard]:
        return self._rows.get(guard_id)

    def get_by_username(self, username: str) -> Optional[Guard]:
        return next((g for g in self._rows.values() if g.username == username), None)


class RecordingSender:
    def __init__(self):
        self.sent: list[str] = []
        self.attempts: list[str] = []

    def send(self, recipient, qr_png: bytes) -> None:
        self.attempts.append(recipient.worker_code)
        self.sent.append(recipient.worker_code)


def make_worker(pk: int, code: str, **kw) -> Worker:
    base = dict(
        worker_pk=pk,
        worker_code=code,
        full_name=f"Worker {code}",
        id_type=IdType.ID_CARD,
        id_number=f"ID-{code}",
        phone="85290000000",
        site_id=SITE_ID,
    )
    base.update(kw)
    return Worker(**base)


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 3, 3, 9, 0, 0)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def guard() -> Guard:
    return Guard(
        guard_id=7,
        full_name="Gate Guard",
        username="guard",
        password_hash=generate_password_hash("secret"),
        site_id=SITE_ID,
    )


@pytest.fixture
def gate(guard, sender, sleeps) -> Container:
    workers = InMemoryWorkers(
        [
            make_worker(1, "W100"),
            make_worker(2, "W200", phone=None, physical_card_id="PC-200", email="w200@example.com"),
            make_worker(3, "W300", status=WorkerStatus.INACTIVE),
            make_worker(4, "W400", site_id=OTHER_SITE_ID),
        ]
    )
    visits = InMemoryVisits(workers)
    categories = InMemoryCategories(
        [
            ItemCategory(1, "HELMET", "Safety helmet"),
            ItemCategory(2, "VEST", "Reflective vest"),
            ItemCategory(3, "RADIO", "Two-way radio"),
            ItemCategory(4, "LAMP", "Head lamp", is_active=False),
        ]
    )
    borrows = InMemoryBorrows(workers, visits, categories)
    guards = InMemoryGuards([guard])

    return wire(
        workers=workers,
        visits=visits,
        categories=categories,
        borrows=borrows,
        guards=guards,
        auth_service=AuthService(guards, secret_key="test-secret", ttl_minutes=60),
        dispatch_queue=DispatchQueue(sender, sleep=sleeps.append, render=lambda payload: b"png", start_worker=False),
    )


@pytest.fixture
def checked_in(gate, fixed_now):
    """W100 on site at SITE_ID with gate card C7 since 09:00."""
    return gate.visit_service.check_in(
        worker_code="W100", site_id=SITE_ID, physical_card_id="C7", registrar_id=7, now=fixed_now
    )


@pytest.fixture
def app(gate, monkeypatch):
    monkeypatch.setenv("APP_ENV", "testing")
    from src.site_gate.site_gate.main import create_app

    return create_app(container=gate)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(gate, guard):
    return {"Authorization": f"Bearer {gate.auth_service.issue_token(guard).access_token}"}
