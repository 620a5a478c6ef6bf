"""Queue API routes: queue lifecycle (create, inspect, delete, pause, resume)
and the jobs inside each queue.

Mutations are forwarded to the queue engine as-is. In demo mode they
answer 503; reads answer with empty results.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, ValidationInfo, field_validator

from ..core import EventType, get_audit_logger
from ..engine.client import EngineHandle
from .errors import ApiError
from .services import DashboardServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/queues", tags=["queues"])

DEFAULT_MAX_SIZE = 10000

_REQUIRED_MESSAGES = {
    "name": "Queue name is required",
    "queueId": "Queue ID is required",
}


def _require_engine(services: DashboardServices) -> EngineHandle:
    if not services.engine.available:
        raise ApiError("QueueManager not available", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return services.engine


# ── Pydantic Models ──────────────────────────────────────────────────


class CreateQueueRequest(BaseModel):
    name: Optional[str] = Field(None, validate_default=True)
    queueId: Optional[str] = Field(None, validate_default=True)
    description: Optional[str] = None
    maxSize: Optional[int] = None

    @field_validator("name", "queueId", mode="before")
    @classmethod
    def _not_empty(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError(_REQUIRED_MESSAGES[info.field_name])
        return value


class AddJobRequest(BaseModel):
    data: Any = None
    priority: Optional[int] = None


# ── Queues ───────────────────────────────────────────────────────────


@router.get("")
async def list_queues(services: DashboardServices = Depends(get_services)):
    """All queues known to the engine (first 1000)."""
    if not services.engine.available:
        return {"queues": [], "total": 0}
    try:
        return await services.engine.get_all_queues(limit=1000)
    except Exception as e:
        raise ApiError(str(e), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR) from e


@router.post("")
async def create_queue(
    body: CreateQueueRequest,
    services: DashboardServices = Depends(get_services),
):
    """Create a queue. ``maxSize`` defaults to 10000."""
    engine = _require_engine(services)
    max_size = body.maxSize or DEFAULT_MAX_SIZE
    try:
        queue = await engine.create_queue(
            body.name, body.queueId, description=body.description, max_size=max_size,
        )
    except Exception as e:
        raise ApiError(str(e)) from e

    get_audit_logger().log_operator_action(
        EventType.QUEUE_CREATED, body.queueId, details={"name": body.name, "max_size": max_size},
    )
    return queue


@router.get("/{queue_id}")
async def get_queue(queue_id: str, services: DashboardServices = Depends(get_services)):
    """Details for a single queue."""
    engine = _require_engine(services)
    try:
        return await engine.get_queue(queue_id)
    except Exception as e:
        raise ApiError(str(e), status_code=status.HTTP_404_NOT_FOUND) from e


@router.delete("/{queue_id}")
async def delete_queue(queue_id: str, services: DashboardServices = Depends(get_services)):
    engine = _require_engine(services)
    try:
        await engine.delete_queue(queue_id)
    except Exception as e:
        raise ApiError(str(e)) from e

    get_audit_logger().log_operator_action(EventType.QUEUE_DELETED, queue_id)
    return {"success": True}


@router.post("/{queue_id}/pause")
async def pause_queue(queue_id: str, services: DashboardServices = Depends(get_services)):
    """Pause a queue, scheduled jobs included."""
    engine = _require_engine(services)
    try:
        await engine.pause_queue(queue_id)
    except Exception as e:
        raise ApiError(str(e)) from e

    get_audit_logger().log_operator_action(EventType.QUEUE_PAUSED, queue_id)
    return {"success": True}


@router.post("/{queue_id}/resume")
async def resume_queue(queue_id: str, services: DashboardServices = Depends(get_services)):
    engine = _require_engine(services)
    try:
        await engine.resume_queue(queue_id)
    except Exception as e:
        raise ApiError(str(e)) from e

    get_audit_logger().log_operator_action(EventType.QUEUE_RESUMED, queue_id)
    return {"success": True}


# ── Jobs ─────────────────────────────────────────────────────────────


@router.get("/{queue_id}/jobs")
async def list_queue_jobs(
    queue_id: str,
    limit: int = Query(100, ge=1),
    offset: int = Query(0, ge=0),
    services: DashboardServices = Depends(get_services),
):
    """A page of the queue's items, ``offset`` through ``offset + limit - 1``."""
    if not services.engine.available:
        return []
    try:
        return await services.engine.get_queue_items(queue_id, offset, offset + limit - 1)
    except Exception as e:
        raise ApiError(str(e), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR) from e


@router.post("/{queue_id}/jobs")
async def add_job(
    queue_id: str,
    body: AddJobRequest,
    services: DashboardServices = Depends(get_services),
):
    engine = _require_engine(services)
    priority = body.priority or 0
    try:
        job = await engine.add_to_queue(queue_id, body.data, priority=priority)
    except Exception as e:
        raise ApiError(str(e)) from e

    job_id = job.get("id") if isinstance(job, dict) else None
    get_audit_logger().log_operator_action(
        EventType.JOB_ADDED, queue_id, job_id=job_id, details={"priority": priority},
    )
    return job


@router.post("/{queue_id}/jobs/{job_id}/cancel")
async def cancel_job(
    queue_id: str,
    job_id: str,
    services: DashboardServices = Depends(get_services),
):
    engine = _require_engine(services)
    try:
        await engine.cancel_job(queue_id, job_id)
    except Exception as e:
        raise ApiError(str(e)) from e

    get_audit_logger().log_operator_action(EventType.JOB_CANCELLED, queue_id, job_id=job_id)
    return {"success": True}
