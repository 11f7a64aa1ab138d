from __future__ import annotations

from datetime import date, time, timedelta

import pytest

from src.site_gate.site_gate.core.enums import BorrowStatus, ReturnResult
from src.site_gate.site_gate.core.exceptions import NotFoundError, NotOnSiteError, UnknownCategoryError
from src.site_gate.site_gate.custody.model import StagedItem

SITE_ID = 1


def _borrow(gate, visit, category="HELMET", item="H001", now=None):
    return gate.custody_service.borrow(
        visit_id=visit.visit_id, worker_pk=visit.worker_pk, category=category, item_code=item, handler_id=7, now=now
    )


def test_borrow_binds_record_to_open_visit(gate, checked_in, fixed_now):
    rec = _borrow(gate, checked_in, now=fixed_now + timedelta(minutes=10))

    assert rec.visit_id == checked_in.visit_id
    assert rec.category_code == "HELMET"
    assert (rec.borrow_date, rec.borrow_time) == (date(2025, 3, 3), time(9, 10))
    assert rec.status == BorrowStatus.BORROWED


def test_category_by_numeric_id_or_code_any_case(gate, checked_in, fixed_now):
    assert _borrow(gate, checked_in, category="2", item="V1", now=fixed_now).category_code == "VEST"
    assert _borrow(gate, checked_in, category="radio", item="R1", now=fixed_now).category_code == "RADIO"


def test_borrow_without_open_visit_creates_nothing(gate, checked_in, fixed_now):
    gate.exit_service.check_out(checked_in.visit_id, physical_card_returned=True, check_out_time=fixed_now)

    with pytest.raises(NotOnSiteError):
        _borrow(gate, checked_in, now=fixed_now)
    assert gate.borrows_repo.all() == []


def test_borrow_rejects_visit_of_another_worker(gate, checked_in, fixed_now):
    with pytest.raises(NotOnSiteError):
        gate.custody_service.borrow(visit_id=checked_in.visit_id, worker_pk=2, category="HELMET", item_code="H1", now=fixed_now)


def test_unknown_and_inactive_categories(gate, checked_in, fixed_now):
    with pytest.raises(UnknownCategoryError):
        _borrow(gate, checked_in, category="CRANE", now=fixed_now)
    with pytest.raises(UnknownCategoryError):
        _borrow(gate, checked_in, category="LAMP", now=fixed_now)


def test_same_item_code_may_be_lent_to_two_workers(gate, checked_in, fixed_now):
    other = gate.visit_service.check_in(
        worker_code="W200", site_id=SITE_ID, physical_card_id="C8", registrar_id=7, contact_phone="1", now=fixed_now
    )
    _borrow(gate, checked_in, now=fixed_now)
    _borrow(gate, other, now=fixed_now)

    assert len(gate.borrows_repo.all()) == 2


def test_batch_partial_failure_keeps_valid_items(gate, checked_in, fixed_now):
    result = gate.custody_service.borrow_batch(
        visit_id=checked_in.visit_id,
        worker_pk=checked_in.worker_pk,
        items=[StagedItem("HELMET", "H001"), StagedItem("CRANE", "X1"), StagedItem("VEST", "V001")],
        now=fixed_now,
    )

    assert [o.ok for o in result.outcomes] == [True, False, True]
    assert result.outcomes[1].code == "UNKNOWN_CATEGORY"
    assert len(result.created) == 2
    assert len(gate.borrows_repo.all()) == 2


def test_batch_reports_duplicates_and_blank_codes(gate, checked_in, fixed_now):
    result = gate.custody_service.borrow_batch(
        visit_id=checked_in.visit_id,
        worker_pk=checked_in.worker_pk,
        items=[StagedItem("HELMET", "H001"), StagedItem("helmet", " H001 "), StagedItem("VEST", "  ")],
        now=fixed_now,
    )

    assert [o.code for o in result.outcomes] == [None, "DUPLICATE_ITEM", "VALIDATION"]
    assert len(gate.borrows_repo.all()) == 1


def test_borrow_for_worker_resolves_visit_once(gate, checked_in, fixed_now):
    result = gate.custody_service.borrow_for_worker("C7", [StagedItem("HELMET", "H001")], site_id=SITE_ID, now=fixed_now)

    assert result.visit_id == checked_in.visit_id
    assert result.worker_code == "W100"


def test_borrow_for_worker_off_site(gate):
    with pytest.raises(NotOnSiteError):
        gate.custody_service.borrow_for_worker("W100", [StagedItem("HELMET", "H001")], site_id=SITE_ID)


def test_return_is_idempotent(gate, checked_in, fixed_now):
    rec = _borrow(gate, checked_in, now=fixed_now)

    first = gate.custody_service.return_one(rec.record_id, now=fixed_now + timedelta(hours=1))
    second = gate.custody_service.return_one(rec.record_id, now=fixed_now + timedelta(hours=2))

    assert first.result == ReturnResult.RETURNED
    assert second.result == ReturnResult.ALREADY_RETURNED
    assert second.record.return_time == time(10, 0)


def test_return_unknown_record(gate):
    with pytest.raises(NotFoundError):
        gate.custody_service.return_one(999)


def test_return_many_reports_each_record(gate, checked_in, fixed_now):
    a = _borrow(gate, checked_in, item="H1", now=fixed_now)
    b = _borrow(gate, checked_in, item="H2", now=fixed_now)
    gate.custody_service.return_one(b.record_id, now=fixed_now)

    outcomes = gate.custody_service.return_many([a.record_id, b.record_id, 404, a.record_id], now=fixed_now)

    assert [(o.record_id, o.result) for o in outcomes] == [
        (a.record_id, ReturnResult.RETURNED),
        (b.record_id, ReturnResult.ALREADY_RETURNED),
        (404, ReturnResult.NOT_FOUND),
    ]


def test_return_outside_guard_site_is_not_found(gate, checked_in, fixed_now):
    rec = _borrow(gate, checked_in, now=fixed_now)
    with pytest.raises(NotFoundError):
        gate.custody_service.return_one(rec.record_id, site_id=2)


def test_open_items_and_categories(gate, checked_in, fixed_now):
    a = _borrow(gate, checked_in, item="H1", now=fixed_now)
    _borrow(gate, checked_in, item="H2", now=fixed_now)
    gate.custody_service.return_one(a.record_id, now=fixed_now)

    assert [r.item_code for r in gate.custody_service.open_items_for_visit(checked_in.visit_id)] == ["H2"]
    assert "LAMP" not in {c.category_code for c in gate.custody_service.list_categories()}


def test_batch_duplicate_matches_category_id_and_code(gate, checked_in, fixed_now):
    result = gate.custody_service.borrow_batch(
        visit_id=checked_in.visit_id,
        worker_pk=checked_in.worker_pk,
        items=[StagedItem("1", "H001"), StagedItem("HELMET", "H001")],
        now=fixed_now,
    )

    assert [o.code for o in result.outcomes] == [None, "DUPLICATE_ITEM"]
    assert len(gate.borrows_repo.all()) == 1


def test_batch_failed_item_does_not_block_same_item_later(gate, checked_in, fixed_now, monkeypatch):
    real_create = gate.borrows_repo.create
    calls = []

    def fails_once(**kw):
        calls.append(kw["item_code"])
        if len(calls) == 1:
            raise RuntimeError("connection reset")
        return real_create(**kw)

    monkeypatch.setattr(gate.borrows_repo, "create", fails_once)
    result = gate.custody_service.borrow_batch(
        visit_id=checked_in.visit_id,
        worker_pk=checked_in.worker_pk,
        items=[StagedItem("HELMET", "H001"), StagedItem("helmet", "H001")],
        now=fixed_now,
    )

    assert [o.code for o in result.outcomes] == ["INTERNAL", None]
    assert [r.item_code for r in gate.borrows_repo.all()] == ["H001"]


def test_batch_blank_code_does_not_block_same_category(gate, checked_in, fixed_now):
    result = gate.custody_service.borrow_batch(
        visit_id=checked_in.visit_id,
        worker_pk=checked_in.worker_pk,
        items=[StagedItem("HELMET", "  "), StagedItem("HELMET", "H001")],
        now=fixed_now,
    )

    assert [o.code for o in result.outcomes] == ["VALIDATION", None]
