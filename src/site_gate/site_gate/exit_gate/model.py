from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

CARD_NOT_RETURNED = "CARD_NOT_RETURNED"
MISSING_REMARK = "MISSING_REMARK"


@dataclass(frozen=True)
class ExitViolation:
    rule: str
    message: str
    item_code: Optional[str] = None


@dataclass(frozen=True)
class ExitDecision:
    """Outcome of the exit gate. `allowed` is False while any violation stands."""

    violations: Sequence[ExitViolation] = field(default_factory=tuple)

    @property
    def allowed(self) -> bool:
        return not self.violations
