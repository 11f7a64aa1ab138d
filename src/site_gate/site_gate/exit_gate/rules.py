from __future__ import annotations

from typing import Iterable, Mapping, Optional

from ..custody.model import BorrowRecord
from .model import CARD_NOT_RETURNED, MISSING_REMARK, ExitDecision, ExitViolation


def missing_remark(item_code: str, category_code: Optional[str] = None) -> ExitViolation:
    label = f"{category_code}/{item_code}" if category_code else item_code
    return ExitViolation(
        rule=MISSING_REMARK,
        item_code=item_code,
        message=f"Item {label} is not returned and has no remark",
    )


def evaluate(
    open_items: Iterable[BorrowRecord],
    physical_card_returned: bool,
    remarks: Optional[Mapping[str, str]] = None,
) -> ExitDecision:
    """Decide whether a visit may be closed.

    Pure: the console runs it before submitting and the service runs it
    again before closing. Every unreturned item needs a non-empty remark
    keyed by its item code.
    """
    remarks = remarks or {}
    violations: list[ExitViolation] = []

    if not physical_card_returned:
        violations.append(ExitViolation(rule=CARD_NOT_RETURNED, message="Gate card has not been returned"))

    for item in open_items:
        if not str(remarks.get(item.item_code) or "").strip():
            violations.append(missing_remark(item.item_code, item.category_code))

    return ExitDecision(violations=tuple(violations))
