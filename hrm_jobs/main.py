import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from .api.gdpr import router as gdpr_router
from .api.health import router as health_router
from .api.jobs import router as jobs_router
from .api.leave import router as leave_router
from .api.prometheus import router as prometheus_router
from .config import API_PREFIX, JOBS_ENABLED, JobsSettings
from .db import SessionLocal, init_db
from .logging_config import setup_logging
from .queue_manager import JobOrchestrator

logger = logging.getLogger("hrm_jobs.main")


class ApiVersionHeaderMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-API-Version"] = "v1"
        return response


def create_app(
    session_factory=None,
    settings: Optional[JobsSettings] = None,
    jobs_enabled: bool = JOBS_ENABLED,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Build the application. The orchestrator is created inside the lifespan so
    its queue binds to the serving event loop, and is stored on
    ``app.state.jobs`` for the routers.
    """

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        if configure_logging:
            setup_logging()

        factory = session_factory or SessionLocal
        if session_factory is None:
            init_db()
        application.state.session_factory = factory

        jobs = JobOrchestrator(settings or JobsSettings.from_env(), session_factory=factory)
        application.state.jobs = jobs
        if jobs_enabled:
            await jobs.start()

        logger.info("HRM Jobs ready", extra={
            "component": "api",
            "jobs_enabled": jobs_enabled,
        })
        try:
            yield
        finally:
            logger.info("HRM Jobs shutting down", extra={"component": "api"})
            await jobs.stop()

    application = FastAPI(title="HRM Jobs", lifespan=lifespan)
    application.add_middleware(ApiVersionHeaderMiddleware)

    application.include_router(health_router, prefix=API_PREFIX)
    application.include_router(prometheus_router, prefix=API_PREFIX)
    application.include_router(jobs_router, prefix=API_PREFIX)
    application.include_router(leave_router, prefix=API_PREFIX)
    application.include_router(gdpr_router, prefix=API_PREFIX)
    return application


app = create_app()

# Server startup configuration
if __name__ == "__main__":
    import uvicorn
    from .config import APP_PORT

    logger.info(f"Starting HRM Jobs on port {APP_PORT}")
    uvicorn.run(
        "hrm_jobs.main:app",
        host="0.0.0.0",
        port=APP_PORT,
        reload=False,
        access_log=True
    )
