from __future__ import annotations

from typing import Optional, Protocol

from .model import Guard


class GuardRepository(Protocol):
    def get_by_id(self, guard_id: int) -> Optional[Guard]:
        raise NotImplementedError

    def get_by_username(self, username: str) -> Optional[Guard]:
        raise NotImplementedError
