from __future__ import annotations

from flask import Flask, request

from ..common.datetime_utils import now_local
from ..common.http import arg_date, bearer_required, current_guard, ok
from ..common.serializers import dump_stats, dump_timeline_entry
from ..container import Container


def register(app: Flask, container: Container) -> None:
    auth_required = bearer_required(container.auth_service)

    @app.get("/api/reports/timeline", endpoint="api_timeline")
    @auth_required
    def timeline():
        day = arg_date("date") or now_local().date()
        entries = container.reconciliation_service.daily_timeline(
            request.args.get("identifier", ""), day, site_id=current_guard().site_id
        )
        return ok({"date": day.isoformat(), "entries": [dump_timeline_entry(e) for e in entries]})

    @app.get("/api/reports/stats", endpoint="api_stats")
    @auth_required
    def stats():
        snapshot = container.stats_service.snapshot(current_guard().site_id, arg_date("date"))
        return ok({"stats": dump_stats(snapshot)})
