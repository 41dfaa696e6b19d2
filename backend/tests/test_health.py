# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Health Endpoint Tests

Run with: pytest tests/test_health.py -v
"""

from fastapi.testclient import TestClient

from main import create_app
from services.task_store import InMemoryTaskStore


class BrokenStore(InMemoryTaskStore):
    """Store whose backing service is down."""

    def check_health(self):
        raise ConnectionError("database unreachable")


class UnhealthyStore(InMemoryTaskStore):

    def check_health(self):
        return {"status": "unhealthy", "backend": "sql", "error": "timeout"}


class TestLiveness:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["app"] == "ArcaneTasks-API"


class TestReadiness:

    def test_ready_with_memory_store(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ready"
        assert body["dependencies"]["task_store"]["backend"] == "memory"

    def test_ready_with_sql_store(self, test_settings, sql_store, event_bus):
        app = create_app(settings=test_settings, store=sql_store, event_bus=event_bus)

        with TestClient(app) as client:
            response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["dependencies"]["task_store"]["database"] == "sqlite"

    def test_store_exception_is_unavailable(self, test_settings, event_bus):
        app = create_app(settings=test_settings, store=BrokenStore(), event_bus=event_bus)

        with TestClient(app) as client:
            response = client.get("/health/ready")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["dependencies"]["task_store"]["error"] == "database unreachable"

    def test_unhealthy_store_is_unavailable(self, test_settings, event_bus):
        app = create_app(settings=test_settings, store=UnhealthyStore(), event_bus=event_bus)

        with TestClient(app) as client:
            response = client.get("/health/ready")

        assert response.status_code == 503


class TestMetrics:

    def test_metrics_count_requests_by_route(self, client):
        client.get("/tasks/t1")
        client.put("/tasks/t1", json={"title": "Stale"}, headers={"If-Match": "1"})

        response = client.get("/health/metrics")

        assert response.status_code == 200
        body = response.json()
        assert body["total_requests"] >= 2
        assert body["by_endpoint"]["GET /tasks/{task_id}"]["count"] == 1
        assert body["by_endpoint"]["PUT /tasks/{task_id}"]["errors"] == 1
        assert body["by_status_code"]["409"] == 1
        assert "commit_count" in body["transactions"]
        assert "events_published" in body["events"]
        assert "memory_rss_mb" in body["system"]
