# ReQueue Dashboard - System Endpoints
#
#   /api/health           - engine health, or {"status": "demo"}
#   /api/system/stats     - system stats snapshot
#   /api/jobs             - newest jobs across all queues
#   /api/activity/recent  - recent job activity feed

import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from .errors import ApiError
from .services import DashboardServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["system"])


@router.get("/health")
async def health(services: DashboardServices = Depends(get_services)):
    if not services.engine.available:
        return {"status": "demo"}
    try:
        return await services.engine.health_check()
    except Exception as e:
        logger.warning("Health check failed: %s", e)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "unhealthy", "error": str(e)},
        )


@router.get("/system/stats")
async def system_stats(services: DashboardServices = Depends(get_services)):
    """Queue/job totals plus the live real-time client count."""
    try:
        return await services.aggregator.compute_system_stats()
    except Exception as e:
        raise ApiError(str(e), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR) from e


@router.get("/jobs")
async def list_all_jobs(
    limit: int = Query(100, ge=1),
    services: DashboardServices = Depends(get_services),
):
    """Jobs from every queue, newest first."""
    try:
        return await services.aggregator.list_all_jobs(limit=limit)
    except Exception as e:
        raise ApiError(str(e), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR) from e


@router.get("/activity/recent")
async def recent_activity(
    limit: int = Query(20, ge=1),
    services: DashboardServices = Depends(get_services),
):
    try:
        return await services.aggregator.recent_activity(limit=limit)
    except Exception as e:
        raise ApiError(str(e), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR) from e
