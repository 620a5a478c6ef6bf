# Tests for the queue API routes
# Covers: listing, creation + validation, single-queue lookup, delete,
#          pause/resume, job paging, add/cancel job, demo-mode responses,
#          and audit records for operator actions.

import json

from conftest import job


# ── Listing ──────────────────────────────────────────────────────────

class TestListQueues:
    def test_lists_engine_queues(self, client, engine):
        engine.add_queue("q1", "Emails")
        engine.add_queue("q2", "Reports")
        resp = client.get("/api/queues")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 2
        assert [q["id"] for q in data["queues"]] == ["q1", "q2"]

    def test_empty_engine(self, client):
        resp = client.get("/api/queues")
        assert resp.json() == {"queues": [], "total": 0}

    def test_engine_failure_is_500(self, client, engine):
        engine.fail["get_all_queues"] = RuntimeError("redis down")
        resp = client.get("/api/queues")
        assert resp.status_code == 500
        assert resp.json() == {"error": "redis down"}

    def test_demo_mode_returns_empty_listing(self, demo_client):
        resp = demo_client.get("/api/queues")
        assert resp.status_code == 200
        assert resp.json() == {"queues": [], "total": 0}


# ── Creation ─────────────────────────────────────────────────────────

class TestCreateQueue:
    def test_create_forwards_to_engine(self, client, engine):
        resp = client.post("/api/queues", json={
            "name": "Emails", "queueId": "emails", "description": "Outbound mail", "maxSize": 50,
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["id"] == "emails"
        assert engine.queues["emails"]["maxSize"] == 50
        assert engine.queues["emails"]["description"] == "Outbound mail"

    def test_max_size_defaults_to_10000(self, client, engine):
        client.post("/api/queues", json={"name": "Emails", "queueId": "emails"})
        assert engine.queues["emails"]["maxSize"] == 10000

    def test_missing_fields_rejected_before_engine(self, client, engine):
        resp = client.post("/api/queues", json={})
        assert resp.status_code == 400
        errors = resp.json()["errors"]
        by_param = {e["param"]: e["msg"] for e in errors}
        assert by_param["name"] == "Queue name is required"
        assert by_param["queueId"] == "Queue ID is required"
        assert all(e["location"] == "body" for e in errors)
        assert not any(c[0] == "create_queue" for c in engine.calls)

    def test_empty_name_rejected(self, client, engine):
        resp = client.post("/api/queues", json={"name": "", "queueId": "x"})
        assert resp.status_code == 400
        assert resp.json()["errors"] == [
            {"param": "name", "msg": "Queue name is required", "location": "body"}
        ]
        assert "x" not in engine.queues

    def test_whitespace_queue_id_rejected(self, client, engine):
        resp = client.post("/api/queues", json={"name": "Emails", "queueId": "   "})
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["param"] == "queueId"
        assert engine.queues == {}

    def test_engine_rejection_is_400(self, client, engine):
        engine.add_queue("emails")
        resp = client.post("/api/queues", json={"name": "Emails", "queueId": "emails"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Queue emails already exists"}

    def test_demo_mode_is_503(self, demo_client):
        resp = demo_client.post("/api/queues", json={"name": "Emails", "queueId": "emails"})
        assert resp.status_code == 503
        assert resp.json() == {"error": "QueueManager not available"}

    def test_validation_runs_in_demo_mode(self, demo_client):
        resp = demo_client.post("/api/queues", json={"queueId": "emails"})
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["msg"] == "Queue name is required"

    def test_creation_is_audited(self, client, tmp_path):
        client.post("/api/queues", json={"name": "Emails", "queueId": "emails"})
        log_files = list((tmp_path / "audit_logs").glob("audit_*.log"))
        assert log_files
        records = [json.loads(line) for line in log_files[0].read_text().splitlines() if line]
        created = [r for r in records if r.get("event_type") == "queue.created"]
        assert created
        assert created[0]["details"]["queue_id"] == "emails"


# ── Single queue ─────────────────────────────────────────────────────

class TestGetQueue:
    def test_found(self, client, engine):
        engine.add_queue("q1", "Emails")
        resp = client.get("/api/queues/q1")
        assert resp.status_code == 200
        assert resp.json()["name"] == "Emails"

    def test_not_found_is_404(self, client):
        resp = client.get("/api/queues/missing")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Queue missing not found"}

    def test_demo_mode_is_503(self, demo_client):
        assert demo_client.get("/api/queues/q1").status_code == 503


# ── Delete / pause / resume ──────────────────────────────────────────

class TestQueueMutations:
    def test_delete(self, client, engine):
        engine.add_queue("q1")
        resp = client.delete("/api/queues/q1")
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert "q1" not in engine.queues

    def test_delete_unknown_is_400(self, client):
        resp = client.delete("/api/queues/nope")
        assert resp.status_code == 400
        assert resp.json() == {"error": "Queue nope not found"}

    def test_pause_passes_dashboard_reason(self, client, engine):
        engine.add_queue("q1")
        resp = client.post("/api/queues/q1/pause")
        assert resp.json() == {"success": True}
        assert engine.queues["q1"]["paused"] is True
        assert engine.pause_options["q1"] == {
            "reason": "Dashboard pause",
            "pause_scheduled_jobs": True,
        }

    def test_resume(self, client, engine):
        engine.add_queue("q1")
        client.post("/api/queues/q1/pause")
        resp = client.post("/api/queues/q1/resume")
        assert resp.json() == {"success": True}
        assert engine.queues["q1"]["paused"] is False

    def test_pause_failure_is_400(self, client, engine):
        engine.add_queue("q1")
        engine.fail[("pause_queue", "q1")] = RuntimeError("already paused")
        resp = client.post("/api/queues/q1/pause")
        assert resp.status_code == 400
        assert resp.json() == {"error": "already paused"}

    def test_demo_mode_mutations_are_503(self, demo_client):
        assert demo_client.delete("/api/queues/q1").status_code == 503
        assert demo_client.post("/api/queues/q1/pause").status_code == 503
        assert demo_client.post("/api/queues/q1/resume").status_code == 503


# ── Jobs ─────────────────────────────────────────────────────────────

class TestQueueJobs:
    def test_default_page(self, client, engine):
        engine.add_queue("q1", items=[job(f"j{i}") for i in range(5)])
        resp = client.get("/api/queues/q1/jobs")
        assert resp.status_code == 200
        assert [j["id"] for j in resp.json()] == ["j0", "j1", "j2", "j3", "j4"]
        assert ("range", "q1", 0, 99) in engine.calls

    def test_offset_and_limit_are_inclusive_range(self, client, engine):
        engine.add_queue("q1", items=[job(f"j{i}") for i in range(10)])
        resp = client.get("/api/queues/q1/jobs", params={"limit": 3, "offset": 2})
        assert [j["id"] for j in resp.json()] == ["j2", "j3", "j4"]
        assert ("range", "q1", 2, 4) in engine.calls

    def test_invalid_limit_rejected(self, client):
        resp = client.get("/api/queues/q1/jobs", params={"limit": 0})
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["param"] == "limit"

    def test_engine_failure_is_500(self, client, engine):
        resp = client.get("/api/queues/missing/jobs")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Queue missing not found"}

    def test_demo_mode_returns_empty_list(self, demo_client):
        resp = demo_client.get("/api/queues/q1/jobs")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_add_job_default_priority(self, client, engine):
        engine.add_queue("q1")
        resp = client.post("/api/queues/q1/jobs", json={"data": {"to": "a@b.c"}})
        assert resp.status_code == 200
        body = resp.json()
        assert body["data"] == {"to": "a@b.c"}
        assert body["priority"] == 0

    def test_add_job_with_priority(self, client, engine):
        engine.add_queue("q1")
        resp = client.post("/api/queues/q1/jobs", json={"data": "x", "priority": 5})
        assert resp.json()["priority"] == 5

    def test_add_job_failure_is_400(self, client):
        resp = client.post("/api/queues/missing/jobs", json={"data": "x"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Queue missing not found"}

    def test_cancel_job_wraps_single_id(self, client, engine):
        engine.add_queue("q1")
        resp = client.post("/api/queues/q1/jobs/j9/cancel")
        assert resp.json() == {"success": True}
        assert engine.cancelled == [("q1", ["j9"])]

    def test_demo_mode_job_mutations_are_503(self, demo_client):
        assert demo_client.post("/api/queues/q1/jobs", json={"data": 1}).status_code == 503
        assert demo_client.post("/api/queues/q1/jobs/j1/cancel").status_code == 503
