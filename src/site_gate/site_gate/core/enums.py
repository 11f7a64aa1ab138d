from __future__ import annotations

from enum import Enum


class WorkerStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class IdType(str, Enum):
    ID_CARD = "ID_CARD"
    PASSPORT = "PASSPORT"
    DRIVER_LICENSE = "DRIVER_LICENSE"
    OTHER = "OTHER"


class VisitStatus(str, Enum):
    """Visit lifecycle stored in the ledger.

    PENDING is reserved: no flow produces it.
    """

    ON_SITE = "ON_SITE"
    LEFT = "LEFT"
    PENDING = "PENDING"


class BorrowStatus(str, Enum):
    """Derived from return_date, never stored."""

    BORROWED = "BORROWED"
    RETURNED = "RETURNED"


class ReturnResult(str, Enum):
    RETURNED = "RETURNED"
    ALREADY_RETURNED = "ALREADY_RETURNED"
    NOT_FOUND = "NOT_FOUND"


class TimelineEvent(str, Enum):
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"
    BORROW = "BORROW"
    RETURN = "RETURN"
    NO_ACTIVITY = "NO_ACTIVITY"


class JobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
