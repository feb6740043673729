"""
Job run history and queue introspection
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ..auth import require_tenant
from ..config import JOB_RUNS_DEFAULT_LIMIT, JOB_RUNS_MAX_LIMIT
from ..queue_manager import JobOrchestrator
from ..schemas.job import JobRunOut, QueueStatsOut
from ..services.run_ledger import JobRunFilter
from ..utils.timeutil import as_utc
from .deps import get_orchestrator

router = APIRouter(tags=["Jobs"])


@router.get("/jobs/runs", response_model=List[JobRunOut])
def list_job_runs(
    response: Response,
    job_type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    started_from: Optional[datetime] = Query(None),
    started_to: Optional[datetime] = Query(None),
    limit: int = Query(JOB_RUNS_DEFAULT_LIMIT, ge=1, le=JOB_RUNS_MAX_LIMIT),
    offset: int = Query(0, ge=0),
    tenant_id: str = Depends(require_tenant()),
    jobs: JobOrchestrator = Depends(get_orchestrator),
):
    """List job runs for the tenant, newest first. Total matches go in ``X-Total-Count``."""
    flt = JobRunFilter(
        job_type=job_type,
        status=status,
        started_from=as_utc(started_from),
        started_to=as_utc(started_to),
    )
    response.headers["X-Total-Count"] = str(jobs.ledger.count_runs(tenant_id, flt))
    return jobs.ledger.list_runs(tenant_id, flt, limit=limit, offset=offset)


@router.get("/jobs/runs/{run_id}", response_model=JobRunOut)
def get_job_run(
    run_id: str,
    tenant_id: str = Depends(require_tenant()),
    jobs: JobOrchestrator = Depends(get_orchestrator),
):
    run = jobs.ledger.get_run(tenant_id, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="job_run_not_found")
    return run


@router.get("/jobs/queue", response_model=QueueStatsOut)
async def get_queue(jobs: JobOrchestrator = Depends(get_orchestrator)):
    return jobs.get_queue_stats()
