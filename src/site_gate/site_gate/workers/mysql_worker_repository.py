from __future__ import annotations

from typing import Optional

from ..core.enums import IdType, WorkerStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone
from .model import Worker
from .repository import WorkerRepository

_COLUMNS = """
    worker_pk, worker_code, full_name, phone, email, id_type, id_number,
    physical_card_id, site_id, distributor_id, status
"""


def row_to_worker(r: dict) -> Worker:
    return Worker(
        worker_pk=int(r["worker_pk"]),
        worker_code=r["worker_code"],
        full_name=r["full_name"],
        id_type=IdType(r["id_type"]),
        id_number=r["id_number"],
        phone=r.get("phone"),
        email=r.get("email"),
        physical_card_id=r.get("physical_card_id"),
        site_id=int(r["site_id"]) if r.get("site_id") is not None else None,
        distributor_id=int(r["distributor_id"]) if r.get("distributor_id") is not None else None,
        status=WorkerStatus(r.get("status") or WorkerStatus.ACTIVE.value),
    )


class MySQLWorkerRepository(WorkerRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def _get_one(self, where: str, value) -> Optional[Worker]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM workers WHERE {where}=%s", (value,))
            r = fetchone(cur)
            return row_to_worker(r) if r else None

    def get_by_pk(self, worker_pk: int) -> Optional[Worker]:
        return self._get_one("worker_pk", int(worker_pk))

    def get_by_code(self, worker_code: str) -> Optional[Worker]:
        return self._get_one("worker_code", worker_code)

    def get_by_card(self, physical_card_id: str) -> Optional[Worker]:
        return self._get_one("physical_card_id", physical_card_id)
