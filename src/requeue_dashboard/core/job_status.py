"""Dashboard-level bucketing of engine job statuses.

The engine owns the status vocabulary; the dashboard only sorts statuses
into three buckets for its summaries:

    active   pending, processing
    failed   failed, timed_out
    other    everything else (completed, cancelled, unknown values)
"""

from enum import Enum
from typing import Any, Optional

ACTIVE_STATUSES = frozenset({"pending", "processing"})
FAILED_STATUSES = frozenset({"failed", "timed_out"})


class JobBucket(str, Enum):
    ACTIVE = "active"
    FAILED = "failed"
    OTHER = "other"


def classify_status(status: Optional[Any]) -> JobBucket:
    # Exact, case-sensitive match on the engine's status strings
    if not isinstance(status, str):
        return JobBucket.OTHER
    if status in ACTIVE_STATUSES:
        return JobBucket.ACTIVE
    if status in FAILED_STATUSES:
        return JobBucket.FAILED
    return JobBucket.OTHER
