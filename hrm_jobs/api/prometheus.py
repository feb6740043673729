"""
Prometheus metrics endpoint for HRM Jobs
"""

import logging
from fastapi import APIRouter, Response
from fastapi.responses import PlainTextResponse
from ..services.prometheus_metrics import prometheus_metrics

logger = logging.getLogger("hrm_jobs.api.prometheus")

router = APIRouter(tags=["Metrics"])

@router.get("/metrics/prometheus", summary="Prometheus metrics")
async def get_prometheus_metrics() -> Response:
    """Job queue and run metrics in Prometheus exposition format."""
    try:
        return PlainTextResponse(
            content=prometheus_metrics.get_metrics(),
            media_type=prometheus_metrics.get_content_type()
        )
    except Exception as e:
        logger.error(f"Failed to get metrics: {e}")
        return PlainTextResponse(
            content="# Metrics temporarily unavailable\n",
            media_type="text/plain"
        )
