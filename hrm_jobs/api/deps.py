from fastapi import HTTPException, Request

from ..queue_manager import JobOrchestrator


def get_orchestrator(request: Request) -> JobOrchestrator:
    """The orchestrator built by the application lifespan"""
    jobs = getattr(request.app.state, "jobs", None)
    if jobs is None:
        raise HTTPException(status_code=503, detail="jobs_unavailable")
    return jobs
