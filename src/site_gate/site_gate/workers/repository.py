from __future__ import annotations

from typing import Optional, Protocol

from .model import Worker


class WorkerRepository(Protocol):
    """Read-only view of the worker directory.

    Workers are maintained by the admin screens; the gate only reads them.
    """

    def get_by_pk(self, worker_pk: int) -> Optional[Worker]:
        raise NotImplementedError

    def get_by_code(self, worker_code: str) -> Optional[Worker]:
        raise NotImplementedError

    def get_by_card(self, physical_card_id: str) -> Optional[Worker]:
        raise NotImplementedError
