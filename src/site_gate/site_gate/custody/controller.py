from __future__ import annotations

from flask import Flask, request

from ..common.http import arg_int, bearer_required, current_guard, json_body, ok
from ..common.serializers import dump_borrow_outcome, dump_category, dump_record, dump_return_outcome
from ..common.validators import require_int
from ..container import Container
from ..core.enums import BorrowStatus
from ..core.exceptions import ValidationError
from .model import BorrowFilter, StagedItem


def _staged_items(data: dict) -> list[StagedItem]:
    raw = data.get("items")
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list")

    items: list[StagedItem] = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("Each item must be a JSON object")
        items.append(
            StagedItem(
                category=str(entry.get("categoryId") or ""),
                item_code=str(entry.get("itemCode") or ""),
                notes=entry.get("notes"),
            )
        )
    return items


def _batch_payload(result) -> dict:
    return {
        "workerId": result.worker_code,
        "visitId": result.visit_id,
        "createdCount": len(result.created),
        "failedCount": len(result.failed),
        "results": [dump_borrow_outcome(o) for o in result.outcomes],
    }


def register(app: Flask, container: Container) -> None:
    auth_required = bearer_required(container.auth_service)

    @app.get("/api/categories", endpoint="api_categories")
    @auth_required
    def categories():
        return ok({"categories": [dump_category(c) for c in container.custody_service.list_categories()]})

    @app.post("/api/borrow-records", endpoint="api_borrow")
    @auth_required
    def borrow():
        data = json_body()
        guard = current_guard()
        worker = container.directory_service.resolve_worker(data.get("workerId", ""), site_id=guard.site_id)
        record = container.custody_service.borrow(
            visit_id=require_int(data.get("visitId"), "visitId"),
            worker_pk=worker.worker_pk,
            category=str(data.get("categoryId") or ""),
            item_code=str(data.get("itemCode") or ""),
            notes=data.get("notes"),
            handler_id=guard.guard_id,
            site_id=guard.site_id,
        )
        return ok({"record": dump_record(record)}, 201)

    @app.post("/api/borrow-records/batch", endpoint="api_borrow_batch")
    @auth_required
    def borrow_batch():
        """Commit a staged list; per-item results, never all-or-nothing."""
        data = json_body()
        guard = current_guard()
        items = _staged_items(data)

        if data.get("visitId") is not None:
            worker = container.directory_service.resolve_worker(data.get("workerId", ""), site_id=guard.site_id)
            result = container.custody_service.borrow_batch(
                visit_id=require_int(data.get("visitId"), "visitId"),
                worker_pk=worker.worker_pk,
                items=items,
                handler_id=guard.guard_id,
                site_id=guard.site_id,
            )
        else:
            result = container.custody_service.borrow_for_worker(
                data.get("workerId", ""), items, site_id=guard.site_id, handler_id=guard.guard_id
            )
        return ok(_batch_payload(result))

    @app.post("/api/borrow-records/<int:record_id>/return", endpoint="api_return_one")
    @auth_required
    def return_one(record_id: int):
        outcome = container.custody_service.return_one(record_id, site_id=current_guard().site_id)
        return ok(dump_return_outcome(outcome))

    @app.post("/api/borrow-records/return", endpoint="api_return_many")
    @auth_required
    def return_many():
        data = json_body()
        ids = data.get("recordIds")
        if not isinstance(ids, list) or not ids:
            raise ValidationError("recordIds must be a non-empty list")
        outcomes = container.custody_service.return_many(
            [require_int(i, "recordId") for i in ids], site_id=current_guard().site_id
        )
        return ok({"results": [dump_return_outcome(o) for o in outcomes]})

    @app.get("/api/borrow-records", endpoint="api_list_borrow_records")
    @auth_required
    def list_records():
        guard = current_guard()
        worker_pk = None
        if request.args.get("workerId"):
            worker_pk = container.directory_service.resolve_worker(request.args["workerId"], site_id=guard.site_id).worker_pk

        status = None
        if request.args.get("status"):
            try:
                status = BorrowStatus(request.args["status"].upper())
            except ValueError:
                raise ValidationError(f"Unknown borrow status '{request.args['status']}'")

        flt = BorrowFilter(
            worker_pk=worker_pk,
            visit_id=arg_int("visitId"),
            site_id=guard.site_id,
            status=status,
            limit=arg_int("limit", 500),
        )
        return ok({"records": [dump_record(r) for r in container.custody_service.list_records(flt)]})
