from __future__ import annotations

from flask import Flask, request

from ..common.http import bearer_required, current_guard, ok
from ..common.serializers import dump_record, dump_visit, dump_worker
from ..container import Container


def register(app: Flask, container: Container) -> None:
    auth_required = bearer_required(container.auth_service)

    @app.get("/api/workers/lookup", endpoint="api_worker_lookup")
    @auth_required
    def worker_lookup():
        worker = container.directory_service.resolve_worker(
            request.args.get("identifier", ""), site_id=current_guard().site_id
        )
        return ok({"worker": dump_worker(worker)})

    @app.get("/api/visits/open", endpoint="api_open_visit")
    @auth_required
    def open_visit():
        """Worker + open visit + items currently held, for the borrow and exit screens."""
        found = container.directory_service.find_open_visit(
            request.args.get("identifier", ""), site_id=current_guard().site_id
        )
        items = container.custody_service.open_items_for_visit(found.visit.visit_id)
        return ok(
            {
                "worker": dump_worker(found.worker),
                "visit": dump_visit(found.visit),
                "openItems": [dump_record(r) for r in items],
            }
        )
