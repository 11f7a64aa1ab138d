from __future__ import annotations

from flask import Flask, request

from ..common.datetime_utils import now_local
from ..common.http import arg_date, arg_flag, arg_int, bearer_required, current_guard, json_body, ok
from ..common.serializers import dump_visit, dump_visit_summary
from ..container import Container
from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.enums import IdType, VisitStatus
from ..core.exceptions import ValidationError
from .model import IdSnapshot, VisitFilter


def _id_snapshot(data: dict):
    number = (data.get("idNumber") or "").strip()
    if not number:
        return None
    try:
        id_type = IdType(str(data.get("idType") or IdType.ID_CARD.value).upper())
    except ValueError:
        raise ValidationError(f"Unknown identity document type '{data.get('idType')}'")
    return IdSnapshot(id_type=id_type, id_number=number)


def _status_arg(raw):
    if not raw:
        return None
    try:
        return VisitStatus(raw.upper())
    except ValueError:
        raise ValidationError(f"Unknown visit status '{raw}'")


def register(app: Flask, container: Container) -> None:
    auth_required = bearer_required(container.auth_service)

    @app.post("/api/visits", endpoint="api_check_in")
    @auth_required
    def check_in():
        data = json_body()
        guard = current_guard()
        visit = container.visit_service.check_in(
            worker_code=data.get("workerId", ""),
            site_id=guard.site_id,
            physical_card_id=data.get("physicalCardId", ""),
            registrar_id=guard.guard_id,
            id_snapshot=_id_snapshot(data),
            contact_phone=data.get("phone"),
            notes=data.get("notes"),
        )
        return ok({"visit": dump_visit(visit)}, 201)

    @app.get("/api/visits", endpoint="api_list_visits")
    @auth_required
    def list_visits():
        guard = current_guard()
        worker_pk = None
        if request.args.get("workerId"):
            worker_pk = container.directory_service.resolve_worker(
                request.args["workerId"], site_id=guard.site_id
            ).worker_pk

        flt = VisitFilter(
            site_id=guard.site_id,
            worker_pk=worker_pk,
            status=_status_arg(request.args.get("status")),
            start_date=arg_date("startDate"),
            end_date=arg_date("endDate"),
            check_out_start=arg_date("checkOutStart"),
            check_out_end=arg_date("checkOutEnd"),
            today_relevant=now_local().date() if arg_flag("todayRelevant") else None,
            limit=arg_int("limit", DEFAULT_HISTORY_LIMIT),
        )
        visits = container.visit_service.list_visits(flt)
        summaries = container.reconciliation_service.visit_summaries(visits)
        return ok({"visits": [dump_visit_summary(s) for s in summaries]})

    @app.get("/api/visits/<int:visit_id>", endpoint="api_get_visit")
    @auth_required
    def get_visit(visit_id: int):
        summary = container.reconciliation_service.summary_for_visit(visit_id, site_id=current_guard().site_id)
        return ok({"visit": dump_visit_summary(summary)})
