import logging

from fastapi import APIRouter, Depends, HTTPException

from ..auth import require_tenant
from ..queue_manager import JobOrchestrator
from ..schemas.job import AccrualSummaryOut
from .deps import get_orchestrator

logger = logging.getLogger("hrm_jobs.api.leave")

router = APIRouter(tags=["Leave"])


@router.post("/leave/accruals/run", response_model=AccrualSummaryOut)
async def run_accruals(
    tenant_id: str = Depends(require_tenant()),
    jobs: JobOrchestrator = Depends(get_orchestrator),
):
    """Apply due leave accruals for the tenant now; recorded like a scheduled run."""
    try:
        summary = await jobs.run_accruals_now(tenant_id)
    except Exception as e:
        logger.error("Leave accrual run failed", extra={
            "component": "api",
            "tenant_id": tenant_id,
            "error": str(e),
        })
        raise HTTPException(status_code=500, detail="accrual_failed")
    return AccrualSummaryOut(
        policies_processed=summary.policies_processed,
        employees_accrued=summary.employees_accrued,
    )
