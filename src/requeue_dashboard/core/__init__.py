# ReQueue Dashboard - Core Module
#
# Shared functionality across the dashboard:
# - Audit logging
# - Job status classification

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    configure_audit_logger,
    get_audit_logger,
)
from .job_status import (
    ACTIVE_STATUSES,
    FAILED_STATUSES,
    JobBucket,
    classify_status,
)

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "configure_audit_logger",
    "get_audit_logger",
    # Job Status
    "ACTIVE_STATUSES",
    "FAILED_STATUSES",
    "JobBucket",
    "classify_status",
]
