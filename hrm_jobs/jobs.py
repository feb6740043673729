"""
Job commands carried by the work queue.

A job knows its type, its tenant and how to run itself. ``run()`` is
synchronous (it talks to the database) and is executed off the event loop
by the orchestrator. It returns the details payload recorded on the job run,
or raises; ``JobError`` lets a job fail while still recording partial details.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Optional

from .services.accrual import AccrualError, AccrualSummary, apply_accruals
from .services.retention import RetentionError, apply_retention, record_retention_run
from .utils.timeutil import utcnow


class JobType(str, Enum):
    LEAVE_ACCRUAL = "leave_accrual"
    GDPR_RETENTION = "gdpr_retention"


class JobError(Exception):
    """Fail a job run but keep ``details`` on the ledger row"""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


class Job:
    job_type: JobType
    tenant_id: str

    def run(self) -> Any:
        raise NotImplementedError


@dataclass
class CallableJob(Job):
    """Adapts a plain zero-argument function into a job"""

    job_type: JobType
    tenant_id: str
    fn: Callable[[], Any] = field(repr=False)

    def __post_init__(self):
        # Only known job types; raises ValueError otherwise
        self.job_type = JobType(self.job_type)

    def run(self) -> Any:
        return self.fn()


@dataclass
class AccrualJob(Job):
    tenant_id: str
    as_of: datetime
    session_factory: Optional[Callable] = field(default=None, repr=False)

    job_type: ClassVar[JobType] = JobType.LEAVE_ACCRUAL

    def run(self) -> AccrualSummary:
        try:
            return apply_accruals(self.session_factory, self.tenant_id, self.as_of)
        except AccrualError as e:
            raise JobError(str(e), details=e.summary) from e


@dataclass
class RetentionJob(Job):
    tenant_id: str
    data_category: str
    cutoff: datetime
    session_factory: Optional[Callable] = field(default=None, repr=False)

    job_type: ClassVar[JobType] = JobType.GDPR_RETENTION

    def summary(self, deleted: int) -> Dict[str, Any]:
        return {
            "data_category": self.data_category,
            "cutoff_date": self.cutoff,
            "deleted_count": deleted,
        }

    def run(self) -> Dict[str, Any]:
        started_at = utcnow()
        try:
            deleted = apply_retention(self.session_factory, self.tenant_id, self.data_category, self.cutoff)
        except RetentionError as e:
            record_retention_run(
                self.session_factory, self.tenant_id, self.data_category, self.cutoff,
                "failed", e.deleted, started_at,
            )
            raise JobError(str(e), details=self.summary(e.deleted)) from e
        record_retention_run(
            self.session_factory, self.tenant_id, self.data_category, self.cutoff,
            "completed", deleted, started_at,
        )
        return self.summary(deleted)
