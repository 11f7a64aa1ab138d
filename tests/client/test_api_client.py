from __future__ import annotations

import json

import httpx
import pytest

from src.site_gate.site_gate.client.api_client import GateApiClient, error_from_response
from src.site_gate.site_gate.core import exceptions as exc
from src.site_gate.site_gate.custody.model import StagedItem


def _client(handler, sleeps=None, **kw):
    return GateApiClient(
        "http://gate.test",
        transport=httpx.MockTransport(handler),
        sleep=(sleeps.append if sleeps is not None else (lambda s: None)),
        backoff=0.5,
        **kw,
    )


def test_error_mapping_by_code_then_status():
    assert isinstance(error_from_response(400, {"code": "NOT_ON_SITE", "message": "x"}), exc.NotOnSiteError)
    assert isinstance(error_from_response(409, {"code": "CARD_IN_USE"}), exc.CardInUseError)
    assert isinstance(error_from_response(404, {}), exc.NotFoundError)
    err = error_from_response(418, {"message": "teapot"})
    assert err.code == "HTTP_418"
    assert err.message == "teapot"


def test_already_on_site_keeps_since_and_visit():
    err = error_from_response(
        400,
        {"code": "ALREADY_ON_SITE", "message": "m", "workerId": "W100", "since": "2025-03-03T09:00:00", "visitId": 5},
    )
    assert isinstance(err, exc.AlreadyOnSiteError)
    assert err.since.hour == 9
    assert err.visit_id == 5


def test_exit_denied_rebuilds_violations():
    err = error_from_response(
        400,
        {"code": "EXIT_DENIED", "message": "m", "violations": [{"rule": "MISSING_REMARK", "itemCode": "H001", "message": "x"}]},
    )
    assert isinstance(err, exc.ExitDeniedError)
    assert err.violations[0].item_code == "H001"


def test_get_retries_connect_errors_with_backoff():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        if len(calls) < 3:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json={"success": True, "categories": []})

    sleeps = []
    assert _client(handler, sleeps).list_categories() == []
    assert len(calls) == 3
    assert sleeps == [0.5, 1.0]


def test_get_gives_up_after_max_attempts():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    sleeps = []
    with pytest.raises(exc.TransientNetworkError):
        _client(handler, sleeps, max_attempts=3).list_categories()
    assert sleeps == [0.5, 1.0]


def test_post_not_resent_after_request_went_out():
    calls = []

    def handler(request):
        calls.append(request.method)
        raise httpx.ReadError("reset", request=request)

    with pytest.raises(exc.TransientNetworkError):
        _client(handler).check_in("W100", "C7")
    assert calls == ["POST"]


def test_post_retried_when_never_connected():
    calls = []

    def handler(request):
        calls.append(request.method)
        if len(calls) == 1:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json={"success": True, "accessToken": "t", "guard": {"guardId": 7}})

    client = _client(handler)
    assert client.login("guard", "secret") == {"guardId": 7}
    assert client.token == "t"
    assert calls == ["POST", "POST"]


def test_bearer_header_and_401_callback():
    seen = []
    kicked = []

    def handler(request):
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(401, json={"success": False, "code": "UNAUTHENTICATED", "message": "Invalid or expired token"})

    client = _client(handler, token="abc", on_unauthorized=lambda: kicked.append(True))

    with pytest.raises(exc.AuthenticationError):
        client.stats()

    assert seen == ["Bearer abc"]
    assert client.token is None
    assert kicked == [True]


def test_non_json_error_body():
    client = _client(lambda request: httpx.Response(502, text="Bad Gateway"))

    with pytest.raises(exc.DomainError) as ei:
        client.list_categories()
    assert ei.value.code == "HTTP_502"


def test_batch_payload_shape():
    captured = {}

    def handler(request):
        captured.update(json.loads(request.content))
        return httpx.Response(200, json={"success": True, "workerId": "W100", "visitId": 3, "results": []})

    result = _client(handler).borrow_batch("W100", [StagedItem("HELMET", "H001")], visit_id=3)

    assert captured == {
        "workerId": "W100",
        "visitId": 3,
        "items": [{"categoryId": "HELMET", "itemCode": "H001", "notes": None}],
    }
    assert result.visit_id == 3


def test_end_to_end_against_app(app):
    with GateApiClient("http://testserver", transport=httpx.WSGITransport(app=app)) as api:
        api.login("guard", "secret")
        visit = api.check_in("W100", "C7")
        result = api.borrow_batch("W100", [StagedItem("HELMET", "H001"), StagedItem("LAMP", "L1")], visit_id=visit.visit_id)

        assert [o.ok for o in result.outcomes] == [True, False]
        assert result.outcomes[1].code == "UNKNOWN_CATEGORY"

        view = api.find_open_visit("C7")
        assert [r.item_code for r in view.open_items] == ["H001"]

        with pytest.raises(exc.ExitDeniedError):
            api.check_out(visit.visit_id, physical_card_returned=True, remarks={})

        closed = api.check_out(visit.visit_id, physical_card_returned=True, remarks={"H001": "lost"})
        assert closed.status.value == "LEFT"

        with pytest.raises(exc.NoOpenVisitError):
            api.find_open_visit("W100")
