"""
Job run ledger: one ``job_runs`` row per execution attempt.

Writes go through ``open_run`` / ``close_run``; reads back the history
views (listing, count, detail). Every call opens its own short session, so
a ledger write never shares a transaction with the job it describes.
"""

import dataclasses
import json
import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update

from ..db import SessionLocal, session_scope
from ..models.job_run import JobRun, JOB_RUN_RUNNING, JOB_RUN_COMPLETED, JOB_RUN_FAILED
from ..utils.timeutil import as_utc, utcnow

logger = logging.getLogger("hrm_jobs.run_ledger")

TERMINAL_STATUSES = (JOB_RUN_COMPLETED, JOB_RUN_FAILED)


@dataclasses.dataclass(frozen=True)
class JobRunFilter:
    job_type: Optional[str] = None
    status: Optional[str] = None
    started_from: Optional[datetime] = None
    started_to: Optional[datetime] = None


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def marshal_details(details: Any) -> Any:
    """
    Convert a job result into a JSON-safe structure for the ``details`` column.
    Raises TypeError/ValueError when the value cannot be represented.
    """
    return json.loads(json.dumps(details, default=_json_default, allow_nan=False))


def _to_dict(run: JobRun) -> Dict[str, Any]:
    return {
        "id": run.id,
        "tenant_id": run.tenant_id,
        "job_type": run.job_type,
        "status": run.status,
        "details": run.details if run.details is not None else {},
        "started_at": as_utc(run.started_at),
        "completed_at": as_utc(run.completed_at),
    }


class RunLedger:
    """Persistence for job run records"""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or SessionLocal

    def open_run(self, tenant_id: str, job_type: str, started_at: Optional[datetime] = None) -> str:
        """Insert a ``running`` row and return its id."""
        with session_scope(self._session_factory) as s:
            run = JobRun(
                tenant_id=tenant_id,
                job_type=job_type,
                status=JOB_RUN_RUNNING,
                started_at=started_at or utcnow(),
            )
            s.add(run)
            s.flush()
            return run.id

    def close_run(
        self,
        run_id: str,
        status: str,
        details: Any,
        completed_at: Optional[datetime] = None,
    ) -> bool:
        """
        Move a running row to its terminal status.

        Returns False when the row is missing or already terminal; terminal
        rows are never rewritten.
        """
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"not a terminal job run status: {status}")
        with session_scope(self._session_factory) as s:
            result = s.execute(
                update(JobRun)
                .where(JobRun.id == run_id, JobRun.status == JOB_RUN_RUNNING)
                .values(status=status, details=details, completed_at=completed_at or utcnow())
            )
            return result.rowcount == 1

    def _filtered(self, stmt, tenant_id: str, flt: Optional[JobRunFilter]):
        stmt = stmt.where(JobRun.tenant_id == tenant_id)
        if flt is None:
            return stmt
        if flt.job_type and flt.job_type.strip():
            stmt = stmt.where(JobRun.job_type == flt.job_type.strip())
        if flt.status and flt.status.strip():
            stmt = stmt.where(JobRun.status == flt.status.strip())
        if flt.started_from is not None:
            stmt = stmt.where(JobRun.started_at >= flt.started_from)
        if flt.started_to is not None:
            stmt = stmt.where(JobRun.started_at <= flt.started_to)
        return stmt

    def list_runs(
        self,
        tenant_id: str,
        flt: Optional[JobRunFilter] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Newest first, scoped to one tenant."""
        stmt = self._filtered(select(JobRun), tenant_id, flt)
        stmt = stmt.order_by(JobRun.started_at.desc(), JobRun.id.desc()).limit(limit).offset(offset)
        with self._session_factory() as s:
            return [_to_dict(run) for run in s.scalars(stmt).all()]

    def count_runs(self, tenant_id: str, flt: Optional[JobRunFilter] = None) -> int:
        stmt = self._filtered(select(func.count()).select_from(JobRun), tenant_id, flt)
        with self._session_factory() as s:
            return int(s.execute(stmt).scalar_one())

    def get_run(self, tenant_id: str, run_id: str) -> Optional[Dict[str, Any]]:
        stmt = select(JobRun).where(JobRun.tenant_id == tenant_id, JobRun.id == run_id)
        with self._session_factory() as s:
            run = s.scalars(stmt).first()
            return _to_dict(run) if run else None
