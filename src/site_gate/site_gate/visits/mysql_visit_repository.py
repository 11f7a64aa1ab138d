from __future__ import annotations

from datetime import datetime
from typing import Mapping, Optional, Sequence

from ..common.datetime_utils import day_bounds
from ..core.constants import EXIT_REMARK_PREFIX
from ..core.enums import IdType, VisitStatus
from ..core.exceptions import ExitDeniedError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from ..exit_gate.rules import missing_remark
from .model import Visit, VisitFilter
from .repository import VisitRepository

_SELECT = """
    SELECT
        v.visit_id, v.worker_pk, w.worker_code, w.full_name AS worker_name,
        v.site_id, v.check_in_time, v.check_out_time, v.status,
        v.physical_card_id, v.id_type, v.id_number, v.registrar_id, v.phone, v.notes
    FROM visits v
    JOIN workers w ON w.worker_pk = v.worker_pk
"""


def row_to_visit(r: dict) -> Visit:
    return Visit(
        visit_id=int(r["visit_id"]),
        worker_pk=int(r["worker_pk"]),
        worker_code=r["worker_code"],
        worker_name=r["worker_name"],
        site_id=int(r["site_id"]),
        check_in_time=r["check_in_time"],
        check_out_time=r.get("check_out_time"),
        status=VisitStatus(r["status"]),
        physical_card_id=r["physical_card_id"],
        id_type=IdType(r["id_type"]),
        id_number=r["id_number"],
        registrar_id=int(r["registrar_id"]) if r.get("registrar_id") is not None else None,
        phone=r.get("phone"),
        notes=r.get("notes"),
    )


class MySQLVisitRepository(VisitRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, visit_id: int) -> Optional[Visit]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_SELECT + " WHERE v.visit_id=%s", (int(visit_id),))
            r = fetchone(cur)
            return row_to_visit(r) if r else None

    def get_open_for_worker(self, worker_pk: int, *, site_id: Optional[int] = None) -> Optional[Visit]:
        clauses = ["v.worker_pk=%s", "v.status=%s"]
        params: list[object] = [int(worker_pk), VisitStatus.ON_SITE.value]
        if site_id is not None:
            clauses.append("v.site_id=%s")
            params.append(int(site_id))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _SELECT + f" WHERE {' AND '.join(clauses)} ORDER BY v.check_in_time DESC LIMIT 1",
                tuple(params),
            )
            r = fetchone(cur)
            return row_to_visit(r) if r else None

    def get_open_by_card(self, physical_card_id: str, *, site_id: Optional[int] = None) -> Optional[Visit]:
        clauses = ["v.physical_card_id=%s", "v.status=%s"]
        params: list[object] = [physical_card_id, VisitStatus.ON_SITE.value]
        if site_id is not None:
            clauses.append("v.site_id=%s")
            params.append(int(site_id))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _SELECT + f" WHERE {' AND '.join(clauses)} ORDER BY v.check_in_time DESC LIMIT 1",
                tuple(params),
            )
            r = fetchone(cur)
            return row_to_visit(r) if r else None

    def create(
        self,
        *,
        worker_pk: int,
        site_id: int,
        check_in_time: datetime,
        physical_card_id: str,
        registrar_id: Optional[int],
        id_type: IdType,
        id_number: str,
        phone: Optional[str],
        notes: Optional[str] = None,
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO visits(
                    worker_pk, site_id, check_in_time, status, physical_card_id,
                    registrar_id, id_type, id_number, phone, notes
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(worker_pk),
                    int(site_id),
                    check_in_time,
                    VisitStatus.ON_SITE.value,
                    physical_card_id,
                    registrar_id,
                    id_type.value,
                    id_number,
                    phone,
                    notes,
                ),
            )
            return int(cur.lastrowid)

    def close(self, *, visit_id: int, check_out_time: datetime, exit_remarks: Mapping[int, str]) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            # The row lock serialises this close with borrows inserted against the visit.
            cur.execute("SELECT status FROM visits WHERE visit_id=%s FOR UPDATE", (int(visit_id),))
            row = fetchone(cur)
            if not row or row["status"] != VisitStatus.ON_SITE.value:
                return False

            cur.execute(
                "SELECT record_id, item_code FROM borrow_records WHERE visit_id=%s AND return_date IS NULL",
                (int(visit_id),),
            )
            unremarked = [r for r in fetchall(cur) if int(r["record_id"]) not in exit_remarks]
            if unremarked:
                raise ExitDeniedError([missing_remark(r["item_code"]) for r in unremarked])

            cur.execute(
                "UPDATE visits SET check_out_time=%s, status=%s WHERE visit_id=%s",
                (check_out_time, VisitStatus.LEFT.value, int(visit_id)),
            )

            for record_id, remark in exit_remarks.items():
                cur.execute(
                    """
                    UPDATE borrow_records
                    SET notes = CONCAT_WS(' | ', NULLIF(notes, ''), %s)
                    WHERE record_id=%s AND visit_id=%s
                    """,
                    (EXIT_REMARK_PREFIX + remark, int(record_id), int(visit_id)),
                )
            return True

    def list_visits(self, flt: VisitFilter) -> Sequence[Visit]:
        base: list[str] = []
        params: list[object] = []

        if flt.site_id is not None:
            base.append("v.site_id=%s")
            params.append(int(flt.site_id))
        if flt.worker_pk is not None:
            base.append("v.worker_pk=%s")
            params.append(int(flt.worker_pk))

        if flt.today_relevant is not None:
            start, end = day_bounds(flt.today_relevant)
            base.append(
                "((v.check_in_time >= %s AND v.check_in_time < %s)"
                " OR (v.check_out_time >= %s AND v.check_out_time < %s)"
                " OR v.status = %s)"
            )
            params.extend([start, end, start, end, VisitStatus.ON_SITE.value])
        else:
            if flt.status is not None:
                base.append("v.status=%s")
                params.append(flt.status.value)
            if flt.start_date is not None:
                base.append("v.check_in_time >= %s")
                params.append(day_bounds(flt.start_date)[0])
            if flt.end_date is not None:
                base.append("v.check_in_time < %s")
                params.append(day_bounds(flt.end_date)[1])
            if flt.check_out_start is not None:
                base.append("v.check_out_time >= %s")
                params.append(day_bounds(flt.check_out_start)[0])
            if flt.check_out_end is not None:
                base.append("v.check_out_time < %s")
                params.append(day_bounds(flt.check_out_end)[1])

        where = f"WHERE {' AND '.join(base)}" if base else ""
        params.append(int(flt.limit))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_SELECT + f" {where} ORDER BY v.check_in_time DESC LIMIT %s", tuple(params))
            return [row_to_visit(r) for r in fetchall(cur)]

    def _count(self, where: str, params: tuple) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS n FROM visits WHERE {where}", params)
            r = fetchone(cur)
            return int(r["n"]) if r else 0

    def count_on_site(self, *, site_id: int) -> int:
        return self._count("site_id=%s AND status=%s", (int(site_id), VisitStatus.ON_SITE.value))

    def count_checked_in_between(self, *, site_id: int, start: datetime, end: datetime) -> int:
        return self._count("site_id=%s AND check_in_time >= %s AND check_in_time < %s", (int(site_id), start, end))

    def count_checked_out_between(self, *, site_id: int, start: datetime, end: datetime) -> int:
        return self._count("site_id=%s AND check_out_time >= %s AND check_out_time < %s", (int(site_id), start, end))
