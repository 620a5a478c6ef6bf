# ReQueue Dashboard - Main Package
#
# Web dashboard for the ReQueue queue engine: REST endpoints for queue and
# job management, system stats aggregation, and a WebSocket feed relaying
# engine events to the browser.

__version__ = "1.0.0"
__author__ = "ReQueue Team"
__description__ = "Real-time dashboard for ReQueue queues"

from .config import DashboardConfig
from .core import (
    EventType,
    EventSeverity,
    get_audit_logger,
)
from .exceptions import ConfigError, DashboardError

__all__ = [
    "__version__",
    "DashboardConfig",
    "ConfigError",
    "DashboardError",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
]
