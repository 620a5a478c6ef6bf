# ReQueue Dashboard - Service Layer
#
# One DashboardServices instance per application holds every piece of
# process-scoped state: the engine handle, the connected-client registry,
# the event relay and the stats aggregator. Routes reach it through
# ``request.app.state.services``.

import logging
from typing import Any, Callable, Optional

from fastapi import Request

from ..aggregator import StatsAggregator
from ..config import DashboardConfig
from ..core import EventSeverity, EventType, get_audit_logger
from ..engine.client import EngineHandle, load_engine
from .realtime import EventBroadcaster, EventRelay

logger = logging.getLogger(__name__)


class DashboardServices:
    """Holds references to the engine and the dashboard's live state.

    Until ``start()`` runs the engine handle is degraded, so routes
    answer with demo-mode responses.
    """

    def __init__(
        self,
        config: DashboardConfig,
        engine_factory: Optional[Callable[..., Any]] = None,
    ):
        self.config = config
        self._engine_factory = engine_factory
        self.broadcaster = EventBroadcaster(outbox_size=config.client_outbox_size)
        self.engine = EngineHandle.degraded("not started")
        self.relay: Optional[EventRelay] = None
        self.aggregator = self._build_aggregator()

    def _build_aggregator(self) -> StatsAggregator:
        return StatsAggregator(
            self.engine,
            connected_clients=self.connected_clients,
            concurrency=self.config.fanout_concurrency,
        )

    def connected_clients(self) -> int:
        if not self.config.features.websocket:
            return 0
        return self.broadcaster.connection_count

    async def start(self) -> None:
        """Connect to the engine (or fall back to demo mode) and wire the relay."""
        if self.config.features.authentication:
            logger.warning("features.authentication is set but authentication is not implemented")

        self.engine = await load_engine(self.config, factory=self._engine_factory)
        self.aggregator = self._build_aggregator()

        audit = get_audit_logger()
        if self.engine.available:
            audit.log_event(
                event_type=EventType.ENGINE_CONNECTED,
                severity=EventSeverity.INFO,
                message="QueueManager initialized",
                details={"redis_host": self.config.redis.host, "redis_db": self.config.redis.db},
            )
            if self.config.features.websocket:
                self.relay = EventRelay(self.engine, self.broadcaster)
                self.relay.start()
        else:
            audit.log_event(
                event_type=EventType.ENGINE_DEGRADED,
                severity=EventSeverity.WARNING,
                message="QueueManager unavailable, running in demo mode",
                details={"reason": self.engine.reason},
            )

    async def stop(self) -> None:
        """Detach the relay and close the engine client."""
        if self.relay is not None:
            self.relay.stop()
            self.relay = None
        try:
            await self.engine.close()
        except Exception as e:
            logger.error("Error closing QueueManager: %s", e)
        else:
            if self.engine.available:
                logger.info("QueueManager closed successfully")


def get_services(request: Request) -> DashboardServices:
    """FastAPI dependency returning the app's services."""
    return request.app.state.services
