"""
Tests for the structlog-based audit logger and job status buckets.
"""

import json

from requeue_dashboard.core import (
    AuditLogger,
    EventSeverity,
    EventType,
    JobBucket,
    classify_status,
    configure_audit_logger,
    get_audit_logger,
)


def _records(log_dir):
    log_file = next(log_dir.glob("audit_*.log"))
    return [json.loads(line) for line in log_file.read_text().splitlines() if line]


class TestAuditLogger:
    def test_log_event_writes_json_line(self, tmp_path):
        audit = AuditLogger(log_dir=tmp_path / "logs")
        event_id = audit.log_event(
            EventType.ENGINE_DEGRADED, EventSeverity.WARNING, "demo mode", {"reason": "refused"},
        )
        audit.close()

        records = _records(tmp_path / "logs")
        record = next(r for r in records if r["event_id"] == event_id)
        assert record["event_type"] == "engine.degraded"
        assert record["severity"] == "warning"
        assert record["details"] == {"reason": "refused"}

    def test_operator_action_details(self, tmp_path):
        audit = AuditLogger(log_dir=tmp_path / "logs")
        audit.log_operator_action(EventType.JOB_CANCELLED, "q1", job_id="j1")
        audit.close()

        record = _records(tmp_path / "logs")[-1]
        assert record["event_type"] == "job.cancelled"
        assert record["details"] == {"queue_id": "q1", "job_id": "j1"}
        assert "(job j1)" in record["message"]

    def test_singleton(self):
        assert get_audit_logger() is get_audit_logger()

    def test_configure_replaces_singleton(self, tmp_path):
        first = get_audit_logger()
        second = configure_audit_logger(tmp_path / "other")
        assert second is not first
        assert get_audit_logger() is second


class TestClassifyStatus:
    def test_buckets(self):
        assert classify_status("pending") == JobBucket.ACTIVE
        assert classify_status("processing") == JobBucket.ACTIVE
        assert classify_status("failed") == JobBucket.FAILED
        assert classify_status("timed_out") == JobBucket.FAILED
        assert classify_status("completed") == JobBucket.OTHER

    def test_unknown_values(self):
        assert classify_status(None) == JobBucket.OTHER
        assert classify_status("Pending") == JobBucket.OTHER
        assert classify_status({"state": "pending"}) == JobBucket.OTHER
