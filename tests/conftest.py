"""
Shared pytest fixtures for the ReQueue Dashboard test suite.

  - FakeQueueEngine -> in-memory stand-in for the external queue engine
  - Audit logger    -> temp directory (keeps test events out of ./audit_logs)
  - make_client     -> TestClient factory with lifespan running
"""

import time
from collections import defaultdict
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from requeue_dashboard.api.main import create_app
from requeue_dashboard.config import DashboardConfig


class FakeEmitter:
    def __init__(self):
        self.handlers = defaultdict(list)

    def on(self, event, callback):
        self.handlers[event].append(callback)

    def off(self, event, callback):
        self.handlers[event].remove(callback)

    def emit(self, event, data=None):
        for callback in list(self.handlers[event]):
            callback(data)


class FakeQueueEngine:
    """Async in-memory queue engine.

    ``fail`` maps a method name, or ``(method, queue_id)``, to the exception
    that call should raise.
    """

    def __init__(self):
        self.queues: Dict[str, Dict[str, Any]] = {}
        self.items: Dict[str, List[Dict[str, Any]]] = {}
        self.declared_counts: Dict[str, int] = {}
        self.event_emitter = FakeEmitter()
        self.fail: Dict[Any, Exception] = {}
        self.calls: List[tuple] = []
        self.pause_options: Dict[str, Dict[str, Any]] = {}
        self.cancelled: List[tuple] = []
        self.system_stats = {"uptime": 42, "system": {"redisConnected": True}}
        self.factory_kwargs: Optional[Dict[str, Any]] = None
        self.closed = False
        self._job_seq = 0

    def _check(self, method, queue_id=None):
        self.calls.append((method, queue_id))
        exc = self.fail.get((method, queue_id)) or self.fail.get(method)
        if exc is not None:
            raise exc

    def _require_queue(self, queue_id):
        if queue_id not in self.queues:
            raise ValueError(f"Queue {queue_id} not found")

    # -- test helpers -----------------------------------------------------

    def add_queue(self, queue_id, name=None, items=None):
        self.queues[queue_id] = {"id": queue_id, "name": name or queue_id, "paused": False}
        self.items[queue_id] = list(items or [])
        return self.queues[queue_id]

    # -- engine API -------------------------------------------------------

    async def health_check(self):
        self._check("health_check")
        return {"status": "healthy", "redis": "connected"}

    async def get_system_stats(self):
        self._check("get_system_stats")
        return dict(self.system_stats)

    async def get_all_queues(self, limit=1000):
        self._check("get_all_queues")
        queues = list(self.queues.values())
        return {"queues": [dict(q) for q in queues[:limit]], "total": len(queues)}

    async def get_queue(self, queue_id):
        self._check("get_queue", queue_id)
        self._require_queue(queue_id)
        return dict(self.queues[queue_id])

    async def get_queue_stats(self, queue_id):
        self._check("get_queue_stats", queue_id)
        self._require_queue(queue_id)
        count = self.declared_counts.get(queue_id, len(self.items[queue_id]))
        return {"queueId": queue_id, "itemCount": count}

    async def get_queue_items(self, queue_id, start, end):
        self._check("get_queue_items", queue_id)
        self.calls.append(("range", queue_id, start, end))
        self._require_queue(queue_id)
        return [dict(i) for i in self.items[queue_id][start:end + 1]]

    async def create_queue(self, name, queue_id, **options):
        self._check("create_queue", queue_id)
        if queue_id in self.queues:
            raise ValueError(f"Queue {queue_id} already exists")
        queue = self.add_queue(queue_id, name)
        queue["description"] = options.get("description")
        queue["maxSize"] = options.get("max_size")
        self.event_emitter.emit("queueCreated", dict(queue))
        return dict(queue)

    async def delete_queue(self, queue_id):
        self._check("delete_queue", queue_id)
        self._require_queue(queue_id)
        del self.queues[queue_id]
        del self.items[queue_id]
        self.event_emitter.emit("queueDeleted", {"queueId": queue_id})

    async def pause_queue(self, queue_id, **options):
        self._check("pause_queue", queue_id)
        self._require_queue(queue_id)
        self.queues[queue_id]["paused"] = True
        self.pause_options[queue_id] = options

    async def resume_queue(self, queue_id):
        self._check("resume_queue", queue_id)
        self._require_queue(queue_id)
        self.queues[queue_id]["paused"] = False

    async def add_to_queue(self, queue_id, data, **options):
        self._check("add_to_queue", queue_id)
        self._require_queue(queue_id)
        self._job_seq += 1
        job = {
            "id": f"job-{self._job_seq}",
            "data": data,
            "priority": options.get("priority"),
            "status": "pending",
            "addedAt": int(time.time() * 1000),
        }
        self.items[queue_id].append(job)
        self.event_emitter.emit("jobAdded", {"queueId": queue_id, "job": dict(job)})
        return dict(job)

    async def cancel_jobs(self, queue_id, job_ids):
        self._check("cancel_jobs", queue_id)
        self._require_queue(queue_id)
        self.cancelled.append((queue_id, list(job_ids)))

    async def close(self):
        self.closed = True


def job(job_id, status="pending", added_at=None, **extra):
    record = {"id": job_id, "status": status, **extra}
    if added_at is not None:
        record["addedAt"] = added_at
    return record


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test."""
    import requeue_dashboard.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    orig_init = audit_mod.AuditLogger.__init__

    def patched_init(self, log_dir=None):
        orig_init(self, log_dir=log_dir or tmp_path / "audit_logs")

    monkeypatch.setattr(audit_mod.AuditLogger, "__init__", patched_init)

    yield

    if audit_mod._audit_logger is not None:
        audit_mod._audit_logger.close()
    audit_mod._audit_logger = old_logger


@pytest.fixture
def engine():
    return FakeQueueEngine()


@pytest.fixture
def engine_factory(engine):
    def factory(**kwargs):
        engine.factory_kwargs = kwargs
        return engine
    return factory


def failing_factory(**kwargs):
    raise ConnectionError("Redis connection refused")


@pytest.fixture
def make_client(engine_factory):
    """Build TestClients (lifespan entered) and close them after the test."""
    opened = []

    def _make(config=None, factory=engine_factory):
        app = create_app(config or DashboardConfig(), engine_factory=factory)
        client = TestClient(app)
        client.__enter__()
        opened.append(client)
        return client

    yield _make

    for client in reversed(opened):
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def demo_client(make_client):
    """Client whose engine failed to initialize (demo mode)."""
    return make_client(factory=failing_factory)
