from __future__ import annotations

from flask import Flask

from ..common.http import bearer_required, current_guard, json_body, ok
from ..common.serializers import dump_job
from ..container import Container
from ..core.exceptions import ValidationError
from .model import Recipient


def register(app: Flask, container: Container) -> None:
    auth_required = bearer_required(container.auth_service)
    queue = container.dispatch_queue

    @app.post("/api/notifications/qr-jobs", endpoint="api_create_qr_job")
    @auth_required
    def create_qr_job():
        data = json_body()
        codes = data.get("workerIds")
        if not isinstance(codes, list) or not codes:
            raise ValidationError("workerIds must be a non-empty list")

        site_id = current_guard().site_id
        recipients = []
        for code in dict.fromkeys(str(c) for c in codes):
            w = container.directory_service.resolve_worker(code, site_id=site_id)
            recipients.append(Recipient(worker_code=w.worker_code, full_name=w.full_name, email=w.email, phone=w.phone))

        queue.cleanup()
        return ok({"job": dump_job(queue.create_job(recipients))}, 202)

    @app.get("/api/notifications/qr-jobs", endpoint="api_list_qr_jobs")
    @auth_required
    def list_qr_jobs():
        return ok({"jobs": [dump_job(j) for j in queue.list_jobs()]})

    @app.get("/api/notifications/qr-jobs/<job_id>", endpoint="api_get_qr_job")
    @auth_required
    def get_qr_job(job_id: str):
        return ok({"job": dump_job(queue.get_job(job_id))})

    @app.post("/api/notifications/qr-jobs/<job_id>/cancel", endpoint="api_cancel_qr_job")
    @auth_required
    def cancel_qr_job(job_id: str):
        return ok({"job": dump_job(queue.cancel_job(job_id))})

    @app.get("/api/notifications/stats", endpoint="api_qr_job_stats")
    @auth_required
    def qr_job_stats():
        return ok({"stats": queue.stats()})
