"""JSON shapes shared by the API controllers and the gate client.

Keys are camelCase on the wire; `dump_*` builds the response body and
`load_*` turns it back into the domain dataclasses on the client side.
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Optional

from ..core.enums import IdType, JobStatus, ReturnResult, TimelineEvent, VisitStatus, WorkerStatus
from ..custody.model import BorrowOutcome, BorrowRecord, ItemCategory, ReturnOutcome
from ..exit_gate.model import ExitDecision, ExitViolation
from ..notifications.model import JobProgress, RecipientError
from ..reports.model import SiteStats, TimelineEntry, VisitSummary
from ..visits.model import Visit
from ..workers.model import Worker


def _iso(value: Optional[date | time]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _d(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _t(value: Optional[str]) -> Optional[time]:
    return time.fromisoformat(value) if value else None


# -------- workers --------
def dump_worker(w: Worker) -> dict[str, Any]:
    return {
        "id": w.worker_pk,
        "workerId": w.worker_code,
        "name": w.full_name,
        "phone": w.phone,
        "email": w.email,
        "idType": w.id_type.value,
        "idNumber": w.id_number,
        "physicalCardId": w.physical_card_id,
        "siteId": w.site_id,
        "distributorId": w.distributor_id,
        "status": w.status.value,
    }


def load_worker(d: dict) -> Worker:
    return Worker(
        worker_pk=int(d["id"]),
        worker_code=d["workerId"],
        full_name=d["name"],
        id_type=IdType(d["idType"]),
        id_number=d["idNumber"],
        phone=d.get("phone"),
        email=d.get("email"),
        physical_card_id=d.get("physicalCardId"),
        site_id=d.get("siteId"),
        distributor_id=d.get("distributorId"),
        status=WorkerStatus(d.get("status", WorkerStatus.ACTIVE.value)),
    )


# -------- visits --------
def dump_visit(v: Visit) -> dict[str, Any]:
    return {
        "visitId": v.visit_id,
        "workerPk": v.worker_pk,
        "workerId": v.worker_code,
        "workerName": v.worker_name,
        "siteId": v.site_id,
        "checkInTime": _iso(v.check_in_time),
        "checkOutTime": _iso(v.check_out_time),
        "status": v.status.value,
        "physicalCardId": v.physical_card_id,
        "idType": v.id_type.value,
        "idNumber": v.id_number,
        "registrarId": v.registrar_id,
        "phone": v.phone,
        "notes": v.notes,
    }


def load_visit(d: dict) -> Visit:
    return Visit(
        visit_id=int(d["visitId"]),
        worker_pk=int(d["workerPk"]),
        worker_code=d["workerId"],
        worker_name=d["workerName"],
        site_id=int(d["siteId"]),
        check_in_time=_dt(d["checkInTime"]),
        check_out_time=_dt(d.get("checkOutTime")),
        status=VisitStatus(d["status"]),
        physical_card_id=d["physicalCardId"],
        id_type=IdType(d["idType"]),
        id_number=d["idNumber"],
        registrar_id=d.get("registrarId"),
        phone=d.get("phone"),
        notes=d.get("notes"),
    )


def dump_visit_summary(s: VisitSummary) -> dict[str, Any]:
    return {
        **dump_visit(s.visit),
        "borrowedCount": s.borrowed_count,
        "returnedCount": s.returned_count,
        "unreturnedCount": s.unreturned_count,
    }


def load_visit_summary(d: dict) -> VisitSummary:
    return VisitSummary(visit=load_visit(d), borrowed_count=int(d["borrowedCount"]), returned_count=int(d["returnedCount"]))


# -------- custody --------
def dump_category(c: ItemCategory) -> dict[str, Any]:
    return {"categoryId": c.category_id, "code": c.category_code, "name": c.category_name, "isActive": c.is_active}


def load_category(d: dict) -> ItemCategory:
    return ItemCategory(
        category_id=int(d["categoryId"]),
        category_code=d["code"],
        category_name=d["name"],
        is_active=bool(d.get("isActive", True)),
    )


def dump_record(r: BorrowRecord) -> dict[str, Any]:
    return {
        "recordId": r.record_id,
        "workerPk": r.worker_pk,
        "workerId": r.worker_code,
        "visitId": r.visit_id,
        "siteId": r.site_id,
        "categoryId": r.category_id,
        "categoryCode": r.category_code,
        "categoryName": r.category_name,
        "itemCode": r.item_code,
        "borrowDate": _iso(r.borrow_date),
        "borrowTime": _iso(r.borrow_time),
        "returnDate": _iso(r.return_date),
        "returnTime": _iso(r.return_time),
        "notes": r.notes,
        "handlerId": r.handler_id,
        "status": r.status.value,
    }


def load_record(d: dict) -> BorrowRecord:
    return BorrowRecord(
        record_id=int(d["recordId"]),
        worker_pk=int(d["workerPk"]),
        worker_code=d["workerId"],
        visit_id=int(d["visitId"]),
        site_id=int(d["siteId"]),
        category_id=int(d["categoryId"]),
        category_code=d["categoryCode"],
        category_name=d["categoryName"],
        item_code=d["itemCode"],
        borrow_date=_d(d["borrowDate"]),
        borrow_time=_t(d["borrowTime"]),
        return_date=_d(d.get("returnDate")),
        return_time=_t(d.get("returnTime")),
        notes=d.get("notes"),
        handler_id=d.get("handlerId"),
    )


def dump_borrow_outcome(o: BorrowOutcome) -> dict[str, Any]:
    return {
        "index": o.index,
        "categoryId": o.category,
        "itemCode": o.item_code,
        "success": o.ok,
        "code": o.code,
        "message": o.message,
        "record": dump_record(o.record) if o.record else None,
    }


def load_borrow_outcome(d: dict) -> BorrowOutcome:
    return BorrowOutcome(
        index=int(d["index"]),
        category=d["categoryId"],
        item_code=d["itemCode"],
        record=load_record(d["record"]) if d.get("record") else None,
        code=d.get("code"),
        message=d.get("message"),
    )


def dump_return_outcome(o: ReturnOutcome) -> dict[str, Any]:
    return {
        "recordId": o.record_id,
        "result": o.result.value,
        "record": dump_record(o.record) if o.record else None,
    }


def load_return_outcome(d: dict) -> ReturnOutcome:
    return ReturnOutcome(
        record_id=int(d["recordId"]),
        result=ReturnResult(d["result"]),
        record=load_record(d["record"]) if d.get("record") else None,
    )


# -------- exit gate --------
def dump_exit_decision(dec: ExitDecision) -> dict[str, Any]:
    return {
        "allowed": dec.allowed,
        "violations": [{"rule": v.rule, "itemCode": v.item_code, "message": v.message} for v in dec.violations],
    }


def load_exit_decision(d: dict) -> ExitDecision:
    return ExitDecision(
        violations=tuple(
            ExitViolation(rule=v["rule"], message=v["message"], item_code=v.get("itemCode"))
            for v in d.get("violations") or []
        )
    )


# -------- reports --------
def dump_timeline_entry(e: TimelineEntry) -> dict[str, Any]:
    return {
        "event": e.event.value,
        "time": e.display_time,
        "label": e.label,
        "visitId": e.visit_id,
        "recordId": e.record_id,
    }


def load_timeline_entry(d: dict) -> TimelineEntry:
    event = TimelineEvent(d["event"])
    at = None if event == TimelineEvent.NO_ACTIVITY else time.fromisoformat(d["time"])
    return TimelineEntry(event=event, at=at, label=d["label"], visit_id=d.get("visitId"), record_id=d.get("recordId"))


def dump_stats(s: SiteStats) -> dict[str, Any]:
    return {
        "siteId": s.site_id,
        "date": _iso(s.day),
        "onSiteCount": s.on_site_count,
        "enteredToday": s.entered_today,
        "exitedToday": s.exited_today,
        "borrowedToday": s.borrowed_today,
        "pendingReturn": s.pending_return,
    }


def load_stats(d: dict) -> SiteStats:
    return SiteStats(
        site_id=int(d["siteId"]),
        day=_d(d["date"]),
        on_site_count=int(d["onSiteCount"]),
        entered_today=int(d["enteredToday"]),
        exited_today=int(d["exitedToday"]),
        borrowed_today=int(d["borrowedToday"]),
        pending_return=int(d["pendingReturn"]),
    )


# -------- notifications --------
def dump_job(j: JobProgress) -> dict[str, Any]:
    return {
        "jobId": j.job_id,
        "status": j.status.value,
        "progress": j.progress,
        "total": j.total,
        "success": j.success,
        "failed": j.failed,
        "currentBatch": j.current_batch,
        "totalBatches": j.total_batches,
        "cancelRequested": j.cancel_requested,
        "errors": [{"workerId": e.worker_code, "error": e.error} for e in j.errors],
        "createdAt": _iso(j.created_at),
        "updatedAt": _iso(j.updated_at),
        "finishedAt": _iso(j.finished_at),
    }


def load_job(d: dict) -> JobProgress:
    return JobProgress(
        job_id=d["jobId"],
        status=JobStatus(d["status"]),
        progress=int(d["progress"]),
        total=int(d["total"]),
        success=int(d["success"]),
        failed=int(d["failed"]),
        current_batch=int(d.get("currentBatch") or 0),
        total_batches=int(d.get("totalBatches") or 0),
        cancel_requested=bool(d.get("cancelRequested")),
        errors=tuple(RecipientError(worker_code=e["workerId"], error=e["error"]) for e in d.get("errors") or []),
        created_at=_dt(d["createdAt"]),
        updated_at=_dt(d["updatedAt"]),
        finished_at=_dt(d.get("finishedAt")),
    )
