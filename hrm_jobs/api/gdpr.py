from typing import Optional

from fastapi import APIRouter, Body, Depends

from ..auth import require_tenant
from ..queue_manager import JobOrchestrator
from ..schemas.job import RetentionRunOut, RetentionRunRequest
from .deps import get_orchestrator

router = APIRouter(tags=["GDPR"])


@router.post("/gdpr/retention/run", response_model=RetentionRunOut)
async def run_retention(
    body: Optional[RetentionRunRequest] = Body(None),
    tenant_id: str = Depends(require_tenant()),
    jobs: JobOrchestrator = Depends(get_orchestrator),
):
    """
    Enforce the tenant's retention policies now.

    Every enabled category (or only those listed in ``categories``) runs
    through the job ledger; one failing category is reported as ``failed``
    and does not stop the others.
    """
    categories = body.categories if body else None
    results = await jobs.run_retention_now(tenant_id, categories=categories)
    return RetentionRunOut(tenant_id=tenant_id, results=results)
