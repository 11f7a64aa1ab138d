from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.enums import IdType, WorkerStatus


@dataclass(frozen=True)
class Worker:
    """Directory entry for a worker.

    `worker_code` is the human-facing code printed on the worker's QR badge;
    `worker_pk` is the internal key the ledgers reference.
    """

    worker_pk: int
    worker_code: str
    full_name: str
    id_type: IdType
    id_number: str
    phone: Optional[str] = None
    email: Optional[str] = None
    physical_card_id: Optional[str] = None
    site_id: Optional[int] = None
    distributor_id: Optional[int] = None
    status: WorkerStatus = WorkerStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == WorkerStatus.ACTIVE
