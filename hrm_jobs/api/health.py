"""
Health check endpoint - no tenant required
"""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health", include_in_schema=False)
async def health(request: Request):
    jobs = getattr(request.app.state, "jobs", None)
    return {
        "status": "ok",
        "jobs_running": bool(jobs and jobs.is_running),
    }
