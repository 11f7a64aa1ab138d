from __future__ import annotations

from datetime import date, time
from typing import Optional, Sequence

from ..core.enums import BorrowStatus, VisitStatus
from ..core.exceptions import NotOnSiteError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, normalize_mysql_time
from .model import BorrowFilter, BorrowRecord, ItemCategory
from .repository import BorrowRepository, CategoryRepository

_SELECT_RECORD = """
    SELECT
        br.record_id, br.worker_pk, w.worker_code, br.visit_id, v.site_id,
        br.category_id, c.category_code, c.category_name, br.item_code,
        br.borrow_date, br.borrow_time, br.return_date, br.return_time,
        br.notes, br.handler_id
    FROM borrow_records br
    JOIN workers w ON w.worker_pk = br.worker_pk
    JOIN visits v ON v.visit_id = br.visit_id
    JOIN item_categories c ON c.category_id = br.category_id
"""


def row_to_record(r: dict) -> BorrowRecord:
    return BorrowRecord(
        record_id=int(r["record_id"]),
        worker_pk=int(r["worker_pk"]),
        worker_code=r["worker_code"],
        visit_id=int(r["visit_id"]),
        site_id=int(r["site_id"]),
        category_id=int(r["category_id"]),
        category_code=r["category_code"],
        category_name=r["category_name"],
        item_code=r["item_code"],
        borrow_date=r["borrow_date"],
        borrow_time=normalize_mysql_time(r["borrow_time"]),
        return_date=r.get("return_date"),
        return_time=normalize_mysql_time(r.get("return_time")),
        notes=r.get("notes"),
        handler_id=int(r["handler_id"]) if r.get("handler_id") is not None else None,
    )


def row_to_category(r: dict) -> ItemCategory:
    return ItemCategory(
        category_id=int(r["category_id"]),
        category_code=r["category_code"],
        category_name=r["category_name"],
        is_active=bool(r.get("is_active", 1)),
    )


class MySQLCategoryRepository(CategoryRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def list_active(self) -> Sequence[ItemCategory]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT category_id, category_code, category_name, is_active
                FROM item_categories
                WHERE is_active=1
                ORDER BY category_code
                """
            )
            return [row_to_category(r) for r in fetchall(cur)]

    def _get_one(self, where: str, value) -> Optional[ItemCategory]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT category_id, category_code, category_name, is_active FROM item_categories WHERE {where}=%s",
                (value,),
            )
            r = fetchone(cur)
            return row_to_category(r) if r else None

    def get_by_id(self, category_id: int) -> Optional[ItemCategory]:
        return self._get_one("category_id", int(category_id))

    def get_by_code(self, category_code: str) -> Optional[ItemCategory]:
        return self._get_one("category_code", category_code)


class MySQLBorrowRepository(BorrowRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(
        self,
        *,
        worker_pk: int,
        visit_id: int,
        category_id: int,
        item_code: str,
        borrow_date: date,
        borrow_time: time,
        notes: Optional[str] = None,
        handler_id: Optional[int] = None,
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            # Inserts nothing unless the visit is still open; the read takes a
            # shared lock that a concurrent close (FOR UPDATE) must wait on.
            cur.execute(
                """
                INSERT INTO borrow_records(
                    worker_pk, visit_id, category_id, item_code, borrow_date, borrow_time, notes, handler_id
                )
                SELECT %s,%s,%s,%s,%s,%s,%s,%s
                FROM visits
                WHERE visit_id=%s AND worker_pk=%s AND status=%s
                """,
                (
                    int(worker_pk), int(visit_id), int(category_id), item_code, borrow_date, borrow_time, notes, handler_id,
                    int(visit_id), int(worker_pk), VisitStatus.ON_SITE.value,
                ),
            )
            if cur.rowcount == 0:
                raise NotOnSiteError("Visit is no longer open; nothing was lent")
            return int(cur.lastrowid)

    def get_by_id(self, record_id: int) -> Optional[BorrowRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(_SELECT_RECORD + " WHERE br.record_id=%s", (int(record_id),))
            r = fetchone(cur)
            return row_to_record(r) if r else None

    def mark_returned(self, *, record_id: int, return_date: date, return_time: time) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE borrow_records
                SET return_date=%s, return_time=%s
                WHERE record_id=%s AND return_date IS NULL
                """,
                (return_date, return_time, int(record_id)),
            )
            return cur.rowcount > 0

    def list_records(self, flt: BorrowFilter) -> Sequence[BorrowRecord]:
        clauses: list[str] = []
        params: list[object] = []

        if flt.worker_pk is not None:
            clauses.append("br.worker_pk=%s")
            params.append(int(flt.worker_pk))
        if flt.visit_id is not None:
            clauses.append("br.visit_id=%s")
            params.append(int(flt.visit_id))
        if flt.site_id is not None:
            clauses.append("v.site_id=%s")
            params.append(int(flt.site_id))
        if flt.status == BorrowStatus.BORROWED:
            clauses.append("br.return_date IS NULL")
        elif flt.status == BorrowStatus.RETURNED:
            clauses.append("br.return_date IS NOT NULL")
        if flt.on_day is not None:
            clauses.append("(br.borrow_date=%s OR br.return_date=%s)")
            params.extend([flt.on_day, flt.on_day])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = _SELECT_RECORD + f" {where} ORDER BY br.borrow_date DESC, br.borrow_time DESC"
        if flt.limit is not None:
            sql += " LIMIT %s"
            params.append(int(flt.limit))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [row_to_record(r) for r in fetchall(cur)]

    def list_for_visits(self, visit_ids: Sequence[int]) -> Sequence[BorrowRecord]:
        ids = [int(v) for v in visit_ids]
        if not ids:
            return []
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                _SELECT_RECORD + f" WHERE br.visit_id IN ({in_clause(ids)}) ORDER BY br.record_id",
                tuple(ids),
            )
            return [row_to_record(r) for r in fetchall(cur)]

    def count_borrowed_on(self, *, site_id: int, day: date) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COUNT(*) AS n
                FROM borrow_records br
                JOIN visits v ON v.visit_id = br.visit_id
                WHERE v.site_id=%s AND br.borrow_date=%s
                """,
                (int(site_id), day),
            )
            r = fetchone(cur)
            return int(r["n"]) if r else 0

    def count_outstanding(self, *, site_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COUNT(*) AS n
                FROM borrow_records br
                JOIN visits v ON v.visit_id = br.visit_id
                WHERE v.site_id=%s AND br.return_date IS NULL
                """,
                (int(site_id),),
            )
            r = fetchone(cur)
            return int(r["n"]) if r else 0
