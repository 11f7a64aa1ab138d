from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence


class DomainError(Exception):
    """Base exception for business rule violations.

    `code` is the machine-readable rule name, `http_status` is what the API
    answers with. The client maps both back into these classes.
    """

    code = "DOMAIN_ERROR"
    http_status = 400

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details: dict[str, Any] = dict(details or {})

    def to_payload(self) -> dict:
        return {"success": False, "code": self.code, "message": self.message, **self.details}


class ValidationError(DomainError):
    """Raised when input data is invalid (missing/blank required field)."""

    code = "VALIDATION"


class BusinessRuleError(DomainError):
    """A request that is well-formed but not allowed in the current state."""

    code = "BUSINESS_RULE"


class AlreadyOnSiteError(BusinessRuleError):
    code = "ALREADY_ON_SITE"

    def __init__(self, worker_code: str, since: datetime, *, visit_id: Optional[int] = None):
        super().__init__(
            f"Worker {worker_code} already on site since {since:%Y-%m-%d %H:%M:%S}",
            details={"workerId": worker_code, "since": since.isoformat(), "visitId": visit_id},
        )
        self.worker_code = worker_code
        self.since = since
        self.visit_id = visit_id


class NotOnSiteError(BusinessRuleError):
    code = "NOT_ON_SITE"


class NoOpenVisitError(BusinessRuleError):
    code = "NO_OPEN_VISIT"


class UnknownCategoryError(BusinessRuleError):
    code = "UNKNOWN_CATEGORY"


class WorkerInactiveError(BusinessRuleError):
    code = "WORKER_INACTIVE"


class VisitClosedError(BusinessRuleError):
    code = "VISIT_CLOSED"


class ExitDeniedError(BusinessRuleError):
    code = "EXIT_DENIED"

    def __init__(self, violations: Sequence[Any]):
        messages = [v.message for v in violations]
        super().__init__(
            "; ".join(messages) or "Exit denied",
            details={"violations": [{"rule": v.rule, "itemCode": v.item_code, "message": v.message} for v in violations]},
        )
        self.violations = list(violations)


class JobStateError(BusinessRuleError):
    code = "JOB_STATE"


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    http_status = 404


class ConflictError(DomainError):
    code = "CONFLICT"
    http_status = 409


class CardInUseError(ConflictError):
    code = "CARD_IN_USE"


class DuplicateRecordError(ConflictError):
    """Raised by repositories when a unique key rejects an insert/update."""

    code = "DUPLICATE"


class AuthenticationError(DomainError):
    """Raised when credentials or bearer token are invalid."""

    code = "UNAUTHENTICATED"
    http_status = 401


class AuthorizationError(DomainError):
    """Raised when a guard lacks permission for an action."""

    code = "FORBIDDEN"
    http_status = 403


class TransientNetworkError(DomainError):
    """Client side only: the service could not be reached after retries."""

    code = "NETWORK"
    http_status = 0


class ActionInFlightError(BusinessRuleError):
    """Client side only: the console is still waiting on a previous action."""

    code = "ACTION_IN_FLIGHT"
