from __future__ import annotations

from flask import Flask

from ..common.http import bearer_required, body_datetime, body_flag, current_guard, json_body, ok
from ..common.serializers import dump_exit_decision, dump_visit
from ..container import Container
from ..core.exceptions import ValidationError


def _remarks(data: dict) -> dict[str, str]:
    raw = data.get("unreturnedItemRemarks") or {}
    if not isinstance(raw, dict):
        raise ValidationError("unreturnedItemRemarks must be an object keyed by item code")
    return {str(k): str(v or "") for k, v in raw.items()}


def register(app: Flask, container: Container) -> None:
    auth_required = bearer_required(container.auth_service)

    @app.post("/api/visits/<int:visit_id>/exit-check", endpoint="api_exit_check")
    @auth_required
    def exit_check(visit_id: int):
        data = json_body()
        decision = container.exit_service.can_exit(
            visit_id,
            physical_card_returned=body_flag(data, "physicalCardReturned"),
            unreturned_item_remarks=_remarks(data),
            site_id=current_guard().site_id,
        )
        return ok({"decision": dump_exit_decision(decision)})

    @app.post("/api/visits/<int:visit_id>/checkout", endpoint="api_check_out")
    @auth_required
    def check_out(visit_id: int):
        data = json_body()
        visit = container.exit_service.check_out(
            visit_id,
            physical_card_returned=body_flag(data, "physicalCardReturned"),
            unreturned_item_remarks=_remarks(data),
            check_out_time=body_datetime(data, "checkOutTime"),
            site_id=current_guard().site_id,
        )
        return ok({"visit": dump_visit(visit)})
