# ReQueue Dashboard - Audit Logging
#
# Structured record of dashboard lifecycle and operator actions.
# Every mutation forwarded to the queue engine (create/delete/pause/resume
# queue, add/cancel job) and every real-time connection change is logged
# with a timestamp and event ID.

import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog

AUDIT_LOGGER_NAME = "requeue_dashboard.audit"


class EventType(str, Enum):
    """Types of dashboard events that can be logged."""

    # Lifecycle
    SYSTEM_START = "system.start"
    SYSTEM_STOP = "system.stop"
    ENGINE_CONNECTED = "engine.connected"
    ENGINE_DEGRADED = "engine.degraded"

    # Real-time clients
    CLIENT_CONNECTED = "client.connected"
    CLIENT_DISCONNECTED = "client.disconnected"

    # Operator actions forwarded to the engine
    QUEUE_CREATED = "queue.created"
    QUEUE_DELETED = "queue.deleted"
    QUEUE_PAUSED = "queue.paused"
    QUEUE_RESUMED = "queue.resumed"
    JOB_ADDED = "job.added"
    JOB_CANCELLED = "job.cancelled"


class EventSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditLogger:
    """
    Append-only structured logger for dashboard events.

    Events are rendered as JSON lines through structlog on top of the
    standard ``logging`` machinery, so they reach whatever handlers the
    process has configured. When ``log_dir`` is given, a daily file
    ``audit_YYYY-MM-DD.log`` is written as well.
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for daily audit files (default: no file output)
        """
        self.log_dir = log_dir
        self._file_handler: Optional[logging.Handler] = None

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        if self.log_dir is not None:
            self._setup_file_handler()

        self.logger = structlog.get_logger(AUDIT_LOGGER_NAME)

    def _setup_file_handler(self):
        """Attach a file handler for today's audit file."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = self.log_dir / f"audit_{today}.log"

        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(message)s"))  # structlog renders

        audit = logging.getLogger(AUDIT_LOGGER_NAME)
        audit.addHandler(file_handler)
        audit.setLevel(logging.INFO)
        self._file_handler = file_handler

    def close(self) -> None:
        """Detach and close the file handler, if any."""
        if self._file_handler is not None:
            logging.getLogger(AUDIT_LOGGER_NAME).removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Log a dashboard event.

        Args:
            event_type: Type of event
            severity: Severity level
            message: Human-readable description
            details: Additional event details

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())
        event_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "details": details or {},
        }

        if severity in (EventSeverity.ERROR, EventSeverity.CRITICAL):
            self.logger.error("dashboard_event", **event_data)
        elif severity == EventSeverity.WARNING:
            self.logger.warning("dashboard_event", **event_data)
        else:
            self.logger.info("dashboard_event", **event_data)

        return event_id

    def log_operator_action(
        self,
        event_type: EventType,
        queue_id: str,
        job_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Log a user-initiated mutation forwarded to the engine."""
        message = f"Dashboard: {event_type.value} - queue {queue_id}"
        if job_id:
            message += f" (job {job_id})"

        event_details = dict(details or {})
        event_details["queue_id"] = queue_id
        if job_id:
            event_details["job_id"] = job_id

        return self.log_event(
            event_type=event_type,
            severity=EventSeverity.INFO,
            message=message,
            details=event_details,
        )


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def configure_audit_logger(log_dir: Optional[Path] = None) -> AuditLogger:
    """Replace the global audit logger (e.g. to enable file output)."""
    global _audit_logger
    if _audit_logger is not None:
        _audit_logger.close()
    _audit_logger = AuditLogger(log_dir=log_dir)
    return _audit_logger


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger
