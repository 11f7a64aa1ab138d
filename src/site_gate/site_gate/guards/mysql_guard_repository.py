from __future__ import annotations

from typing import Optional

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone
from .model import Guard
from .repository import GuardRepository


def row_to_guard(r: dict) -> Guard:
    return Guard(
        guard_id=int(r["guard_id"]),
        full_name=r["full_name"],
        username=r["username"],
        password_hash=r["password_hash"],
        site_id=int(r["site_id"]),
        is_active=bool(r.get("is_active", 1)),
    )


class MySQLGuardRepository(GuardRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def _get_one(self, where: str, value) -> Optional[Guard]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT guard_id, full_name, username, password_hash, site_id, is_active
                FROM guards
                WHERE {where}=%s
                """,
                (value,),
            )
            r = fetchone(cur)
            return row_to_guard(r) if r else None

    def get_by_id(self, guard_id: int) -> Optional[Guard]:
        return self._get_one("guard_id", int(guard_id))

    def get_by_username(self, username: str) -> Optional[Guard]:
        return self._get_one("username", username)
