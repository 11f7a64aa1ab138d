from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Mapping, Optional, Sequence

import httpx

from ..common.serializers import (
    load_borrow_outcome,
    load_category,
    load_exit_decision,
    load_job,
    load_record,
    load_return_outcome,
    load_stats,
    load_timeline_entry,
    load_visit,
    load_visit_summary,
    load_worker,
)
from ..core.constants import CLIENT_BACKOFF_SECONDS, CLIENT_MAX_ATTEMPTS
from ..core import exceptions as exc
from ..custody.model import BorrowBatchResult, BorrowRecord, ItemCategory, ReturnOutcome, StagedItem
from ..exit_gate.model import ExitDecision, ExitViolation
from ..notifications.model import JobProgress
from ..reports.model import SiteStats, TimelineEntry, VisitSummary
from ..visits.model import Visit
from ..workers.model import Worker

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(10.0, connect=5.0)

_IDEMPOTENT = {"GET", "HEAD", "OPTIONS", "PUT", "DELETE"}

_ERRORS_BY_CODE: dict[str, type[exc.DomainError]] = {
    cls.code: cls
    for cls in (
        exc.ValidationError,
        exc.NotOnSiteError,
        exc.NoOpenVisitError,
        exc.UnknownCategoryError,
        exc.WorkerInactiveError,
        exc.VisitClosedError,
        exc.JobStateError,
        exc.NotFoundError,
        exc.CardInUseError,
        exc.DuplicateRecordError,
        exc.AuthorizationError,
    )
}

_ERRORS_BY_STATUS: dict[int, type[exc.DomainError]] = {
    400: exc.BusinessRuleError,
    403: exc.AuthorizationError,
    404: exc.NotFoundError,
    409: exc.ConflictError,
}


def error_from_response(status: int, body: Mapping[str, Any]) -> exc.DomainError:
    """Rebuild the server's exception from its status and JSON error body."""
    code = str(body.get("code") or "")
    message = str(body.get("message") or f"HTTP {status}")
    details = {k: v for k, v in body.items() if k not in {"success", "code", "message"}}

    if code == exc.AlreadyOnSiteError.code and details.get("since"):
        return exc.AlreadyOnSiteError(
            str(details.get("workerId") or ""),
            datetime.fromisoformat(details["since"]),
            visit_id=details.get("visitId"),
        )
    if code == exc.ExitDeniedError.code:
        return exc.ExitDeniedError(
            [
                ExitViolation(rule=v["rule"], message=v["message"], item_code=v.get("itemCode"))
                for v in details.get("violations") or []
            ]
        )

    cls = _ERRORS_BY_CODE.get(code) or _ERRORS_BY_STATUS.get(status)
    if cls is not None:
        return cls(message, code=code or None, details=details)
    return exc.DomainError(message, code=code or f"HTTP_{status}", details=details)


@dataclass(frozen=True)
class OpenVisitView:
    """What the borrow and exit screens show for a scanned worker."""

    worker: Worker
    visit: Optional[Visit]
    open_items: Sequence[BorrowRecord] = ()


class GateApiClient:
    """httpx client for the gate service.

    Transport failures are retried with exponential backoff; a POST is only
    retried when the connection was never established, so a check-in or
    borrow is never submitted twice. A 401 clears the token and calls
    `on_unauthorized` (the console's forced logout).
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        on_unauthorized: Optional[Callable[[], None]] = None,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
        max_attempts: int = CLIENT_MAX_ATTEMPTS,
        backoff: float = CLIENT_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"User-Agent": "site-gate-console", "Accept": "application/json"},
        )
        self.token = token
        self.on_unauthorized = on_unauthorized
        self._max_attempts = max(1, int(max_attempts))
        self._backoff = float(backoff)
        self._sleep = sleep

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GateApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -------- transport --------
    def _send(self, method: str, path: str, *, params=None, json=None) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        retry_any = method.upper() in _IDEMPOTENT
        last: Optional[Exception] = None

        for attempt in range(1, self._max_attempts + 1):
            try:
                return self._client.request(method, path, params=params, json=json, headers=headers)
            except (httpx.ConnectError, httpx.ConnectTimeout) as e:
                last = e
            except httpx.TransportError as e:
                if not retry_any:
                    raise exc.TransientNetworkError(
                        f"Connection lost during {method} {path}; check the ledger before retrying"
                    ) from e
                last = e

            logger.warning("%s %s attempt %s/%s failed: %s", method, path, attempt, self._max_attempts, last)
            if attempt < self._max_attempts:
                self._sleep(self._backoff * (2 ** (attempt - 1)))

        raise exc.TransientNetworkError(f"Gate service unreachable ({method} {path})") from last

    def _request(self, method: str, path: str, *, params=None, json=None) -> dict[str, Any]:
        resp = self._send(method, path, params=params, json=json)
        try:
            body = resp.json()
        except ValueError:
            body = {"message": resp.text or resp.reason_phrase}
        if not isinstance(body, dict):
            body = {"data": body}

        if resp.is_success:
            return body

        if resp.status_code == 401:
            self.token = None
            if self.on_unauthorized is not None:
                self.on_unauthorized()
            raise exc.AuthenticationError(str(body.get("message") or "Session expired"))

        raise error_from_response(resp.status_code, body)

    # -------- auth --------
    def login(self, username: str, password: str) -> dict[str, Any]:
        body = self._request("POST", "/api/auth/login", json={"username": username, "password": password})
        self.token = body["accessToken"]
        return body["guard"]

    def logout(self) -> None:
        self.token = None

    # -------- directory / visits --------
    def lookup_worker(self, identifier: str) -> Worker:
        return load_worker(self._request("GET", "/api/workers/lookup", params={"identifier": identifier})["worker"])

    def find_open_visit(self, identifier: str) -> OpenVisitView:
        body = self._request("GET", "/api/visits/open", params={"identifier": identifier})
        return OpenVisitView(
            worker=load_worker(body["worker"]),
            visit=load_visit(body["visit"]),
            open_items=tuple(load_record(r) for r in body.get("openItems") or []),
        )

    def check_in(
        self,
        worker_code: str,
        physical_card_id: str,
        *,
        id_type: Optional[str] = None,
        id_number: Optional[str] = None,
        phone: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Visit:
        payload = {
            "workerId": worker_code,
            "physicalCardId": physical_card_id,
            "idType": id_type,
            "idNumber": id_number,
            "phone": phone,
            "notes": notes,
        }
        return load_visit(self._request("POST", "/api/visits", json=payload)["visit"])

    def list_visits(
        self,
        *,
        status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        check_out_start: Optional[date] = None,
        check_out_end: Optional[date] = None,
        today_relevant: bool = False,
        worker_code: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[VisitSummary]:
        params = {
            "status": status,
            "startDate": start_date.isoformat() if start_date else None,
            "endDate": end_date.isoformat() if end_date else None,
            "checkOutStart": check_out_start.isoformat() if check_out_start else None,
            "checkOutEnd": check_out_end.isoformat() if check_out_end else None,
            "todayRelevant": "1" if today_relevant else None,
            "workerId": worker_code,
            "limit": limit,
        }
        body = self._request("GET", "/api/visits", params={k: v for k, v in params.items() if v is not None})
        return [load_visit_summary(v) for v in body["visits"]]

    def get_visit(self, visit_id: int) -> VisitSummary:
        return load_visit_summary(self._request("GET", f"/api/visits/{int(visit_id)}")["visit"])

    # -------- custody --------
    def list_categories(self) -> list[ItemCategory]:
        return [load_category(c) for c in self._request("GET", "/api/categories")["categories"]]

    def borrow(
        self, *, visit_id: int, worker_code: str, category_id: str, item_code: str, notes: Optional[str] = None
    ) -> BorrowRecord:
        payload = {
            "visitId": visit_id,
            "workerId": worker_code,
            "categoryId": category_id,
            "itemCode": item_code,
            "notes": notes,
        }
        return load_record(self._request("POST", "/api/borrow-records", json=payload)["record"])

    def borrow_batch(
        self, worker_code: str, items: Sequence[StagedItem], *, visit_id: Optional[int] = None
    ) -> BorrowBatchResult:
        payload: dict[str, Any] = {
            "workerId": worker_code,
            "items": [{"categoryId": i.category, "itemCode": i.item_code, "notes": i.notes} for i in items],
        }
        if visit_id is not None:
            payload["visitId"] = int(visit_id)
        body = self._request("POST", "/api/borrow-records/batch", json=payload)
        return BorrowBatchResult(
            worker_code=body["workerId"],
            visit_id=int(body["visitId"]),
            outcomes=tuple(load_borrow_outcome(o) for o in body["results"]),
        )

    def return_one(self, record_id: int) -> ReturnOutcome:
        return load_return_outcome(self._request("POST", f"/api/borrow-records/{int(record_id)}/return"))

    def return_many(self, record_ids: Sequence[int]) -> list[ReturnOutcome]:
        body = self._request("POST", "/api/borrow-records/return", json={"recordIds": [int(r) for r in record_ids]})
        return [load_return_outcome(o) for o in body["results"]]

    def list_borrow_records(
        self, *, worker_code: Optional[str] = None, visit_id: Optional[int] = None, status: Optional[str] = None
    ) -> list[BorrowRecord]:
        params = {"workerId": worker_code, "visitId": visit_id, "status": status}
        body = self._request("GET", "/api/borrow-records", params={k: v for k, v in params.items() if v is not None})
        return [load_record(r) for r in body["records"]]

    # -------- exit --------
    def exit_check(self, visit_id: int, *, physical_card_returned: bool, remarks: Mapping[str, str]) -> ExitDecision:
        payload = {"physicalCardReturned": physical_card_returned, "unreturnedItemRemarks": dict(remarks)}
        body = self._request("POST", f"/api/visits/{int(visit_id)}/exit-check", json=payload)
        return load_exit_decision(body["decision"])

    def check_out(
        self,
        visit_id: int,
        *,
        physical_card_returned: bool,
        remarks: Mapping[str, str],
        check_out_time: Optional[datetime] = None,
    ) -> Visit:
        payload = {
            "physicalCardReturned": physical_card_returned,
            "unreturnedItemRemarks": dict(remarks),
            "checkOutTime": check_out_time.isoformat() if check_out_time else None,
        }
        return load_visit(self._request("POST", f"/api/visits/{int(visit_id)}/checkout", json=payload)["visit"])

    # -------- reports --------
    def timeline(self, identifier: str, day: Optional[date] = None) -> list[TimelineEntry]:
        params = {"identifier": identifier}
        if day:
            params["date"] = day.isoformat()
        return [load_timeline_entry(e) for e in self._request("GET", "/api/reports/timeline", params=params)["entries"]]

    def stats(self, day: Optional[date] = None) -> SiteStats:
        params = {"date": day.isoformat()} if day else None
        return load_stats(self._request("GET", "/api/reports/stats", params=params)["stats"])

    # -------- notifications --------
    def create_qr_job(self, worker_codes: Sequence[str]) -> JobProgress:
        return load_job(self._request("POST", "/api/notifications/qr-jobs", json={"workerIds": list(worker_codes)})["job"])

    def get_job(self, job_id: str) -> JobProgress:
        return load_job(self._request("GET", f"/api/notifications/qr-jobs/{job_id}")["job"])

    def cancel_job(self, job_id: str) -> JobProgress:
        return load_job(self._request("POST", f"/api/notifications/qr-jobs/{job_id}/cancel")["job"])
