# ReQueue Dashboard - Stats Aggregation
#
# Walks every queue the engine reports, fetches a bounded slice of each
# queue's items, and folds them into:
#   - the system stats snapshot       (/api/system/stats, ws getStats)
#   - the cross-queue job listing     (/api/jobs)
#   - the recent activity feed        (/api/activity/recent)
#
# Bounds: at most MAX_QUEUES queues per listing and MAX_ITEMS_PER_QUEUE
# items per queue are examined. Queues holding more items than that are
# undercounted.

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from pydantic import BaseModel

from .core.job_status import JobBucket, classify_status
from .engine.client import EngineHandle
from .exceptions import AggregationError

logger = logging.getLogger(__name__)

MAX_QUEUES = 1000
MAX_ITEMS_PER_QUEUE = 1000
ACTIVITY_ITEMS_PER_QUEUE = 10

T = TypeVar("T")


class SystemTotals(BaseModel):
    totalQueues: int = 0
    totalJobs: int = 0
    activeJobs: int = 0
    failedJobs: int = 0
    connectedClients: int = 0


class QueueTally(BaseModel):
    """Per-queue contribution to the system totals."""
    declared: int = 0
    scanned: int = 0
    active: int = 0
    failed: int = 0


class ActivityEntry(BaseModel):
    type: str = "Job"
    description: str
    status: Optional[str] = None
    timestamp: Any = None
    queueId: str


def tally_items(items: List[Dict[str, Any]]) -> QueueTally:
    """Bucket item statuses (declared count is filled in by the caller)."""
    tally = QueueTally(scanned=len(items))
    for item in items:
        bucket = classify_status(item.get("status"))
        if bucket == JobBucket.ACTIVE:
            tally.active += 1
        elif bucket == JobBucket.FAILED:
            tally.failed += 1
    return tally


def timestamp_sort_key(value: Any) -> float:
    """Turn an engine timestamp into epoch seconds for ordering.

    Accepts epoch milliseconds, ISO-8601 strings (``Z`` suffix included)
    and datetimes. Missing or unparseable values sort last.
    """
    if value is None or isinstance(value, bool):
        return float("-inf")
    if isinstance(value, (int, float)):
        return float(value) / 1000.0
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return float("-inf")
    else:
        return float("-inf")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def job_timestamp(job: Dict[str, Any]) -> Any:
    return job.get("addedAt", job.get("createdAt"))


class StatsAggregator:
    """Read-only fan-out over the engine's queues.

    Per-queue engine calls run concurrently, at most ``concurrency`` at a
    time. Results are reassembled in queue enumeration order, so sorts and
    totals match a sequential scan.
    """

    def __init__(
        self,
        engine: EngineHandle,
        connected_clients: Callable[[], int] = lambda: 0,
        concurrency: int = 8,
    ):
        self.engine = engine
        self._connected_clients = connected_clients
        self._concurrency = max(1, concurrency)

    async def _list_queues(self) -> Dict[str, Any]:
        try:
            return await self.engine.get_all_queues(limit=MAX_QUEUES)
        except Exception as e:
            logger.error("Failed to list queues: %s", e)
            raise AggregationError(str(e)) from e

    async def _fan_out(
        self,
        queues: List[Dict[str, Any]],
        fetch: Callable[[Dict[str, Any]], Awaitable[T]],
        what: str,
    ) -> List[Tuple[Dict[str, Any], Optional[T]]]:
        """Run ``fetch`` per queue; a failing queue yields ``None``."""
        semaphore = asyncio.Semaphore(self._concurrency)

        async def guarded(queue: Dict[str, Any]) -> Optional[T]:
            async with semaphore:
                try:
                    return await fetch(queue)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning("Failed to get %s for queue %s: %s", what, queue.get("id"), e)
                    return None

        results = await asyncio.gather(*(guarded(q) for q in queues))
        return list(zip(queues, results))

    # -- System stats -----------------------------------------------------

    async def _tally_queue(self, queue: Dict[str, Any]) -> QueueTally:
        queue_id = queue["id"]
        queue_stats = await self.engine.get_queue_stats(queue_id)
        items = await self.engine.get_queue_items(queue_id, 0, MAX_ITEMS_PER_QUEUE - 1)
        tally = tally_items(items[:MAX_ITEMS_PER_QUEUE])
        tally.declared = int(queue_stats.get("itemCount") or 0)
        return tally

    def empty_stats(self) -> Dict[str, Any]:
        """Zeroed snapshot served in demo mode."""
        totals = SystemTotals(connectedClients=self._connected_clients())
        return {"system": totals.model_dump()}

    async def compute_system_stats(self) -> Dict[str, Any]:
        """Build the system stats snapshot.

        Engine-reported stats are merged first; the dashboard's own totals
        override engine keys of the same name inside ``system``.

        Raises:
            AggregationError: if the queue listing or engine stats call fails
        """
        if not self.engine.available:
            return self.empty_stats()

        try:
            engine_stats = await self.engine.get_system_stats()
        except Exception as e:
            logger.error("Failed to get system stats: %s", e)
            raise AggregationError(str(e)) from e

        listing = await self._list_queues()
        tallies = await self._fan_out(listing["queues"], self._tally_queue, "stats")

        totals = SystemTotals(
            totalQueues=listing.get("total") or 0,
            connectedClients=self._connected_clients(),
        )
        for _queue, tally in tallies:
            if tally is None:
                continue
            totals.totalJobs += tally.declared
            totals.activeJobs += tally.active
            totals.failedJobs += tally.failed

        engine_system = engine_stats.get("system")
        if not isinstance(engine_system, dict):
            engine_system = {}
        return {
            **engine_stats,
            "system": {**engine_system, **totals.model_dump()},
        }

    # -- Cross-queue job listing ------------------------------------------

    async def list_all_jobs(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Newest ``limit`` jobs across all queues, annotated with their queue."""
        if not self.engine.available:
            return []

        listing = await self._list_queues()

        async def fetch(queue: Dict[str, Any]) -> List[Dict[str, Any]]:
            return await self.engine.get_queue_items(queue["id"], 0, limit - 1)

        all_jobs: List[Dict[str, Any]] = []
        for queue, jobs in await self._fan_out(listing["queues"], fetch, "jobs"):
            for job in jobs or []:
                all_jobs.append({**job, "queueId": queue["id"], "queueName": queue.get("name")})

        # sorted() is stable, ties keep enumeration order
        all_jobs = sorted(all_jobs, key=lambda j: timestamp_sort_key(job_timestamp(j)), reverse=True)
        return all_jobs[:limit]

    # -- Recent activity --------------------------------------------------

    async def recent_activity(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Most recent job activity across all queues."""
        if not self.engine.available:
            return []

        listing = await self._list_queues()

        async def fetch(queue: Dict[str, Any]) -> List[Dict[str, Any]]:
            items = await self.engine.get_queue_items(queue["id"], 0, ACTIVITY_ITEMS_PER_QUEUE - 1)
            return items[:ACTIVITY_ITEMS_PER_QUEUE]

        activity: List[ActivityEntry] = []
        for queue, jobs in await self._fan_out(listing["queues"], fetch, "activity"):
            for job in jobs or []:
                activity.append(ActivityEntry(
                    description=f"Job {job.get('id')} in {queue.get('name')}",
                    status=job.get("status"),
                    timestamp=job_timestamp(job),
                    queueId=queue["id"],
                ))

        activity = sorted(activity, key=lambda a: timestamp_sort_key(a.timestamp), reverse=True)
        return [a.model_dump() for a in activity[:limit]]
