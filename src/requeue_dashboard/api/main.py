# ReQueue Dashboard - FastAPI Backend
#
# REST API + WebSocket server over the external queue engine.
#
# Startup order: middleware is bound when the app is built; the lifespan
# hook then constructs the engine client (demo mode on failure) and wires
# the real-time relay; only after that does uvicorn bind the listener.
# Shutdown order: stop accepting connections, then close the engine client.

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Mapping, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from .. import __version__
from ..config import DashboardConfig
from ..core import EventSeverity, EventType, get_audit_logger
from .errors import ApiError, api_error_handler, unhandled_error_handler, validation_error_handler
from .queue_routes import router as queue_router
from .rate_limiter import RateLimitMiddleware
from .realtime import router as realtime_router
from .security_headers import SecurityHeadersMiddleware
from .services import DashboardServices
from .system_routes import router as system_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    services: DashboardServices = app.state.services
    audit = get_audit_logger()
    audit.log_event(
        event_type=EventType.SYSTEM_START,
        severity=EventSeverity.INFO,
        message="ReQueue Dashboard starting",
        details={"version": __version__, "websocket": services.config.features.websocket},
    )

    await services.start()
    yield
    await services.stop()

    audit.log_event(
        event_type=EventType.SYSTEM_STOP,
        severity=EventSeverity.INFO,
        message="ReQueue Dashboard stopped",
    )


def create_app(
    config: Optional[DashboardConfig] = None,
    engine_factory: Optional[Callable[..., Any]] = None,
) -> FastAPI:
    """
    Build the dashboard application.

    Args:
        config: Dashboard settings (default: DashboardConfig())
        engine_factory: Engine constructor; overrides ``config.engine_factory``

    Returns:
        FastAPI app with ``app.state.services`` populated
    """
    config = config or DashboardConfig()

    app = FastAPI(
        title="ReQueue Dashboard API",
        description="Real-time queue management and monitoring dashboard",
        version=__version__,
        lifespan=_lifespan,
        exception_handlers={
            ApiError: api_error_handler,
            RequestValidationError: validation_error_handler,
            Exception: unhandled_error_handler,
        },
    )
    app.state.services = DashboardServices(config, engine_factory=engine_factory)

    # Last added runs first: CORS -> security headers -> rate limit
    rate_limit = config.features.rate_limit
    app.add_middleware(
        RateLimitMiddleware,
        limit=rate_limit.max_requests,
        window_seconds=rate_limit.window_seconds,
        trust_proxy=rate_limit.trust_proxy,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(system_router)
    app.include_router(queue_router)
    if config.features.websocket:
        app.include_router(realtime_router)

    static_dir = config.static_dir
    if static_dir is not None and static_dir.is_dir():
        app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")

    @app.get("/", include_in_schema=False)
    async def serve_frontend():
        """Serve the dashboard page, when a static directory is configured."""
        if static_dir is not None and (static_dir / "index.html").is_file():
            return FileResponse(str(static_dir / "index.html"))
        raise ApiError("Dashboard frontend not installed", status_code=404)

    return app


class DashboardServer:
    """
    Embeddable dashboard: the app plus a uvicorn server it can start and stop.

    ``start()`` resolves once the listener is bound; ``stop()`` resolves once
    the listener is closed and the engine client has been shut down.
    """

    def __init__(
        self,
        config: Optional[DashboardConfig] = None,
        engine_factory: Optional[Callable[..., Any]] = None,
    ):
        self.config = config or DashboardConfig()
        self.app = create_app(self.config, engine_factory=engine_factory)
        self._server: Optional[uvicorn.Server] = None
        self._serve_task: Optional[asyncio.Task] = None

    @property
    def services(self) -> DashboardServices:
        return self.app.state.services

    @property
    def running(self) -> bool:
        return self._serve_task is not None and not self._serve_task.done()

    @property
    def bound_port(self) -> Optional[int]:
        """Actual listening port (useful when configured with port 0)."""
        if self._server is None or not self._server.servers:
            return None
        sockets = self._server.servers[0].sockets
        return sockets[0].getsockname()[1] if sockets else None

    async def start(self, startup_timeout: float = 30.0) -> None:
        if self.running:
            raise RuntimeError("Dashboard server is already running")

        self._server = uvicorn.Server(uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_config=None,
            lifespan="on",
        ))
        self._serve_task = asyncio.create_task(self._server.serve())

        deadline = asyncio.get_running_loop().time() + startup_timeout
        while not self._server.started:
            if self._serve_task.done():
                task, self._serve_task = self._serve_task, None
                exc = None if task.cancelled() else task.exception()
                raise RuntimeError("Dashboard server failed to start") from exc
            if asyncio.get_running_loop().time() > deadline:
                await self.stop()
                raise RuntimeError(f"Dashboard server did not start within {startup_timeout}s")
            await asyncio.sleep(0.05)

        logger.info("Configuration: %s", describe_config(self.config))
        port = self.bound_port or self.config.port
        logger.info("ReQueue Dashboard running on http://localhost:%s", port)
        logger.info("API: http://localhost:%s/api", port)
        if self.config.features.websocket:
            logger.info("WebSocket: ws://localhost:%s/ws", port)
        logger.info("Health: http://localhost:%s/api/health", port)

    async def stop(self) -> None:
        if self._serve_task is None:
            return
        self._server.should_exit = True
        try:
            await self._serve_task
        finally:
            self._serve_task = None
        logger.info("Dashboard stopped")


def create_dashboard(
    options: Optional[Mapping[str, Any]] = None,
    engine_factory: Optional[Callable[..., Any]] = None,
) -> DashboardServer:
    """
    Build a dashboard from a nested options dict.

    Usage:
        dashboard = create_dashboard({"port": 3000, "features": {"websocket": True}})
        await dashboard.start()
        ...
        await dashboard.stop()
    """
    return DashboardServer(DashboardConfig.from_options(options), engine_factory=engine_factory)


def start_api_server(config: Optional[DashboardConfig] = None) -> None:
    """
    Run the dashboard in the foreground until interrupted.

    Args:
        config: Dashboard settings (default: read from the environment)
    """
    config = config or DashboardConfig.from_env()
    app = create_app(config)
    logger.info("Configuration: %s", describe_config(config))
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())


def describe_config(config: DashboardConfig) -> Dict[str, Any]:
    """Loggable view of the settings (password masked)."""
    return {
        "port": config.port,
        "redis": f"{config.redis.host}:{config.redis.port} (DB: {config.redis.db})",
        "redis_password": "***" if config.redis.password else None,
        "engine": config.engine_factory,
        "websocket": config.features.websocket,
        "rate_limit": f"{config.features.rate_limit.max_requests} per "
                      f"{config.features.rate_limit.window_ms}ms",
    }
