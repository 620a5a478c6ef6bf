# ReQueue Dashboard - Web API
#
# FastAPI backend providing REST API and WebSocket endpoints
# for the dashboard UI.

from .main import (
    DashboardServer,
    create_app,
    create_dashboard,
    start_api_server,
)
from .realtime import EventBroadcaster, EventRelay
from .services import DashboardServices

__all__ = [
    "DashboardServer",
    "create_app",
    "create_dashboard",
    "start_api_server",
    "DashboardServices",
    "EventBroadcaster",
    "EventRelay",
]
