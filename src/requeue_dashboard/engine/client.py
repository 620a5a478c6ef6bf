# ReQueue Dashboard - Queue Engine Client
#
# The queue engine is an external dependency. This module:
#   - describes the calls the dashboard makes on it (QueueEngine)
#   - constructs it from a configured "module:attribute" factory
#   - wraps it in a two-state handle (connected / degraded) that every
#     route checks before touching the engine

import asyncio
import dataclasses
import importlib
import inspect
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from ..config import DashboardConfig
from ..exceptions import EngineLoadError, EngineUnavailable

logger = logging.getLogger(__name__)

# Engine events relayed to real-time clients
ENGINE_EVENTS = (
    "queueCreated",
    "queueDeleted",
    "queuePaused",
    "queueResumed",
    "jobAdded",
    "jobProcessed",
    "jobFailed",
    "jobCancelled",
)

# Cache settings the engine is constructed with
ENGINE_CACHE_OPTIONS = {
    "enabled": True,
    "strategy": "write-through",
    "max_size": 1000,
    "ttl": 300000,
}

PAUSE_REASON = "Dashboard pause"


class QueueEngine(Protocol):
    """Calls the dashboard makes on the queue engine.

    Every method may be a coroutine function or a plain function.
    Queues, jobs and stats are JSON-like mappings using the engine's own
    keys (``id``, ``name``, ``status``, ``addedAt``, ``itemCount`` ...).
    """

    def health_check(self) -> Any: ...

    def get_system_stats(self) -> Any: ...

    def get_all_queues(self, limit: int = 1000) -> Any: ...

    def get_queue(self, queue_id: str) -> Any: ...

    def get_queue_stats(self, queue_id: str) -> Any: ...

    def get_queue_items(self, queue_id: str, start: int, end: int) -> Any: ...

    def create_queue(self, name: str, queue_id: str, **options: Any) -> Any: ...

    def delete_queue(self, queue_id: str) -> Any: ...

    def pause_queue(self, queue_id: str, **options: Any) -> Any: ...

    def resume_queue(self, queue_id: str) -> Any: ...

    def add_to_queue(self, queue_id: str, data: Any, **options: Any) -> Any: ...

    def cancel_jobs(self, queue_id: str, job_ids: List[str]) -> Any: ...

    def close(self) -> Any: ...


class EngineState(str, Enum):
    CONNECTED = "connected"
    DEGRADED = "degraded"


async def _resolve(value: Any) -> Any:
    """Await engine results that are awaitable, pass others through."""
    if inspect.isawaitable(value):
        return await value
    return value


def to_plain(obj: Any) -> Any:
    """Convert an engine record into a JSON-friendly dict where possible."""
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, Mapping):
        return dict(obj)
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, (list, tuple)):
        return [to_plain(o) for o in obj]
    return obj


class EngineHandle:
    """Two-state capability around the engine client.

    ``CONNECTED``: calls are forwarded to the engine.
    ``DEGRADED``: demo mode; every call raises ``EngineUnavailable`` and
    routes answer with their documented empty/zero/503 responses instead.
    """

    def __init__(self, engine: Optional[Any] = None, reason: Optional[str] = None):
        self._engine = engine
        self.reason = reason
        self.state = EngineState.CONNECTED if engine is not None else EngineState.DEGRADED

    @classmethod
    def degraded(cls, reason: str) -> "EngineHandle":
        return cls(engine=None, reason=reason)

    @property
    def available(self) -> bool:
        return self.state == EngineState.CONNECTED

    @property
    def engine(self) -> Any:
        if not self.available:
            raise EngineUnavailable("QueueManager not available")
        return self._engine

    # -- Reads ------------------------------------------------------------

    async def health_check(self) -> Dict[str, Any]:
        return to_plain(await _resolve(self.engine.health_check()))

    async def get_system_stats(self) -> Dict[str, Any]:
        stats = to_plain(await _resolve(self.engine.get_system_stats()))
        return stats if isinstance(stats, dict) else {}

    async def get_all_queues(self, limit: int = 1000) -> Dict[str, Any]:
        result = to_plain(await _resolve(self.engine.get_all_queues(limit=limit)))
        if isinstance(result, list):
            # Bare list from the engine: wrap it in the listing shape
            result = {"queues": result, "total": len(result)}
        queues = [to_plain(q) for q in result.get("queues") or []]
        return {**result, "queues": queues, "total": result.get("total") or 0}

    async def get_queue(self, queue_id: str) -> Dict[str, Any]:
        return to_plain(await _resolve(self.engine.get_queue(queue_id)))

    async def get_queue_stats(self, queue_id: str) -> Dict[str, Any]:
        stats = to_plain(await _resolve(self.engine.get_queue_stats(queue_id)))
        return stats if isinstance(stats, dict) else {}

    async def get_queue_items(self, queue_id: str, start: int, end: int) -> List[Dict[str, Any]]:
        """Items ``start`` through ``end`` inclusive."""
        items = await _resolve(self.engine.get_queue_items(queue_id, start, end))
        return [to_plain(item) for item in items or []]

    # -- Mutations --------------------------------------------------------

    async def create_queue(
        self, name: str, queue_id: str, description: Optional[str] = None, max_size: int = 10000
    ) -> Any:
        return to_plain(await _resolve(
            self.engine.create_queue(name, queue_id, description=description, max_size=max_size)
        ))

    async def delete_queue(self, queue_id: str) -> None:
        await _resolve(self.engine.delete_queue(queue_id))

    async def pause_queue(self, queue_id: str) -> None:
        await _resolve(
            self.engine.pause_queue(queue_id, reason=PAUSE_REASON, pause_scheduled_jobs=True)
        )

    async def resume_queue(self, queue_id: str) -> None:
        await _resolve(self.engine.resume_queue(queue_id))

    async def add_to_queue(self, queue_id: str, data: Any, priority: int = 0) -> Any:
        return to_plain(await _resolve(self.engine.add_to_queue(queue_id, data, priority=priority)))

    async def cancel_job(self, queue_id: str, job_id: str) -> None:
        await _resolve(self.engine.cancel_jobs(queue_id, [job_id]))

    # -- Events / lifecycle -----------------------------------------------

    def subscribe(self, event_name: str, callback: Callable[[Any], Any]) -> bool:
        """Register ``callback`` for an engine event.

        Returns False when the engine exposes no event source.
        """
        if not self.available:
            return False
        emitter = getattr(self._engine, "event_emitter", None) or self._engine
        on = getattr(emitter, "on", None)
        if not callable(on):
            return False
        on(event_name, callback)
        return True

    def unsubscribe(self, event_name: str, callback: Callable[[Any], Any]) -> bool:
        """Remove a callback added with :meth:`subscribe`.

        Returns False when the event source has no way to remove listeners.
        """
        if not self.available:
            return False
        emitter = getattr(self._engine, "event_emitter", None) or self._engine
        for name in ("off", "remove_listener", "removeListener"):
            remove = getattr(emitter, name, None)
            if callable(remove):
                remove(event_name, callback)
                return True
        return False

    async def close(self) -> None:
        if not self.available:
            return
        close = getattr(self._engine, "close", None)
        if callable(close):
            await _resolve(close())


def import_factory(path: str) -> Callable[..., Any]:
    """Import ``module:attribute`` (``module.attribute`` also accepted)."""
    if ":" in path:
        module_name, attr = path.split(":", 1)
    else:
        module_name, _, attr = path.rpartition(".")
    if not module_name or not attr:
        raise EngineLoadError(f"Invalid engine factory path: {path!r}")

    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise EngineLoadError(f"Engine factory {path} import error: {e}") from e

    if not callable(factory):
        raise EngineLoadError(f"Engine factory {path} is not callable")
    return factory


async def load_engine(
    config: DashboardConfig,
    factory: Optional[Callable[..., Any]] = None,
) -> EngineHandle:
    """Construct the engine client, falling back to demo mode on any failure.

    Args:
        config: Dashboard configuration (redis params, factory path)
        factory: Explicit factory; overrides ``config.engine_factory``

    Returns:
        A connected handle, or a degraded one if construction failed
    """
    try:
        if factory is None:
            factory = import_factory(config.engine_factory)
        engine = await _resolve(factory(
            redis=config.redis.to_engine_options(),
            cache=dict(ENGINE_CACHE_OPTIONS),
        ))
        if engine is None:
            raise EngineLoadError("Engine factory returned None")
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error("Failed to initialize QueueManager: %s", e)
        logger.info("Dashboard will run in demo mode")
        return EngineHandle.degraded(str(e))

    logger.info("QueueManager initialized successfully")
    return EngineHandle(engine)
