from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..core.enums import JobStatus


@dataclass(frozen=True)
class Recipient:
    worker_code: str
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class RecipientError:
    worker_code: str
    error: str


@dataclass(frozen=True)
class JobProgress:
    """Read-only view of a dispatch job, safe to hand across threads."""

    job_id: str
    status: JobStatus
    progress: int
    total: int
    success: int
    failed: int
    current_batch: int
    total_batches: int
    cancel_requested: bool
    errors: tuple[RecipientError, ...]
    created_at: datetime
    updated_at: datetime
    finished_at: Optional[datetime] = None


@dataclass
class DispatchJob:
    """Mutable job state. Only the queue touches it, under its lock."""

    job_id: str
    recipients: list[Recipient]
    created_at: datetime
    updated_at: datetime
    total_batches: int
    status: JobStatus = JobStatus.PENDING
    processed: int = 0
    success: int = 0
    failed: int = 0
    current_batch: int = 0
    cancel_requested: bool = False
    errors: list[RecipientError] = field(default_factory=list)
    finished_at: Optional[datetime] = None

    @property
    def total(self) -> int:
        return len(self.recipients)

    @property
    def progress(self) -> int:
        if not self.recipients:
            return 100 if self.status == JobStatus.COMPLETED else 0
        return round(self.processed * 100 / self.total)

    def snapshot(self) -> JobProgress:
        return JobProgress(
            job_id=self.job_id,
            status=self.status,
            progress=self.progress,
            total=self.total,
            success=self.success,
            failed=self.failed,
            current_batch=self.current_batch,
            total_batches=self.total_batches,
            cancel_requested=self.cancel_requested,
            errors=tuple(self.errors),
            created_at=self.created_at,
            updated_at=self.updated_at,
            finished_at=self.finished_at,
        )
