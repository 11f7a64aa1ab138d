from __future__ import annotations

from flask import Flask

from ..common.http import bearer_required, current_guard, json_body, ok
from ..container import Container
from .model import Guard


def _guard_json(guard: Guard) -> dict:
    return {"guardId": guard.guard_id, "name": guard.full_name, "username": guard.username, "siteId": guard.site_id}


def register(app: Flask, container: Container) -> None:
    auth_required = bearer_required(container.auth_service)

    @app.get("/api/health", endpoint="api_health")
    def health():
        return ok({"status": "up"})

    @app.post("/api/auth/login", endpoint="api_login")
    def login():
        data = json_body()
        issued = container.auth_service.authenticate(data.get("username", ""), data.get("password", ""))
        return ok(
            {
                "accessToken": issued.access_token,
                "tokenType": "Bearer",
                "expiresIn": issued.expires_in,
                "guard": _guard_json(issued.guard),
            }
        )

    @app.get("/api/auth/me", endpoint="api_me")
    @auth_required
    def me():
        return ok({"guard": _guard_json(current_guard())})
