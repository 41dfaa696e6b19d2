# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Task API Tests

HTTP contract for /tasks (also served under /api/v1/tasks):
- ETag / If-Match optimistic concurrency on PUT
- Error bodies with stable codes and a trace id
- Workspace isolation through X-Workspace-ID
- Concurrent PUTs with the same If-Match: one 200, the rest 409

Run with: pytest tests/test_tasks_api.py -v
"""

import asyncio

import pytest

from config import Settings
from main import create_app
from services.task_store import InMemoryTaskStore, demo_tasks


def put_title(client, task_id, title, if_match=None, prefix="/tasks", headers=None):
    headers = dict(headers or {})
    if if_match is not None:
        headers["If-Match"] = if_match
    return client.put(f"{prefix}/{task_id}", json={"title": title}, headers=headers)


# =============================================================================
# Conditional Update
# =============================================================================

class TestUpdateTask:

    def test_stale_if_match_conflicts(self, client):
        response = put_title(client, "t1", "Outdated edit", if_match="1")

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "CONFLITO_CONCORRENCIA"
        assert body["status_code"] == 409
        assert body["detail"]["client_version"] == 1
        assert body["detail"]["database_version"] == 5
        assert body["trace_id"] == response.headers["X-Trace-ID"]

        # State is untouched
        current = client.get("/tasks/t1")
        assert current.json()["version"] == 5

    def test_current_if_match_succeeds(self, client):
        response = put_title(client, "t1", "Fresh edit", if_match="5")

        assert response.status_code == 200
        body = response.json()
        assert body["version"] == 6
        assert body["title"] == "Fresh edit"
        assert response.headers["ETag"] == "6"

    @pytest.mark.parametrize("if_match", ['"5"', 'W/"5"'])
    def test_quoted_entity_tags_accepted(self, client, if_match):
        response = put_title(client, "t1", "Quoted", if_match=if_match)

        assert response.status_code == 200
        assert response.json()["version"] == 6

    def test_missing_if_match(self, client):
        response = put_title(client, "t1", "No version")

        assert response.status_code == 400
        assert response.json()["code"] == "VERSAO_FALTANTE"
        assert client.get("/tasks/t1").json()["version"] == 5

    def test_invalid_if_match(self, client):
        response = put_title(client, "t1", "Bad version", if_match="abc")

        assert response.status_code == 400
        assert response.json()["code"] == "VERSAO_INVALIDA"

    def test_unknown_task(self, client):
        response = put_title(client, "inexistente", "Ghost", if_match="1")

        assert response.status_code == 404
        assert response.json()["code"] == "NAO_ENCONTRADO"

    def test_blank_title_rejected(self, client):
        response = put_title(client, "t1", "   ", if_match="5")

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDACAO"

    def test_title_too_long_rejected(self, client):
        response = put_title(client, "t1", "x" * 501, if_match="5")

        assert response.status_code == 422

    def test_title_limit_applies_after_trimming(self, client):
        response = put_title(client, "t1", "  " + "x" * 500 + " ", if_match="5")

        assert response.status_code == 200
        assert response.json()["title"] == "x" * 500

    def test_out_of_range_if_match(self, client):
        response = put_title(client, "t1", "Overflow", if_match="100000000000000000000")

        assert response.status_code == 400
        assert response.json()["code"] == "VERSAO_INVALIDA"
        assert client.get("/tasks/t1").json()["version"] == 5

    def test_sequential_edits_follow_etag(self, client):
        etag = client.get("/tasks/t2").headers["ETag"]
        for i in range(3):
            response = put_title(client, "t2", f"Edit {i}", if_match=etag)
            assert response.status_code == 200
            etag = response.headers["ETag"]

        assert etag == "6"

    def test_replayed_request_conflicts(self, client):
        assert put_title(client, "t2", "Once", if_match="3").status_code == 200

        replay = put_title(client, "t2", "Once", if_match="3")

        assert replay.status_code == 409
        assert replay.json()["detail"]["database_version"] == 4


# =============================================================================
# Reads and Creates
# =============================================================================

class TestReadAndCreate:

    def test_create_then_get(self, client):
        created = client.post("/tasks", json={"title": "New task"})

        assert created.status_code == 201
        assert created.headers["ETag"] == "1"
        task = created.json()
        assert task["version"] == 1
        assert task["workspace_id"] == "w1"

        fetched = client.get(f"/tasks/{task['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["version"] == 1
        assert fetched.json()["title"] == "New task"

    def test_get_sets_etag(self, client):
        response = client.get("/tasks/t1")

        assert response.status_code == 200
        assert response.headers["ETag"] == "5"
        assert response.json()["title"] == "Implementar Concorrência Otimista (PUT /tasks/{id})"

    def test_get_unknown_task(self, client):
        response = client.get("/tasks/nope")

        assert response.status_code == 404
        assert response.json()["code"] == "NAO_ENCONTRADO"

    def test_list_tasks(self, client):
        response = client.get("/tasks")

        assert response.status_code == 200
        assert {t["id"] for t in response.json()} == {"t1", "t2"}

    def test_list_with_query(self, client):
        response = client.get("/tasks", params={"query": "postgresql"})

        assert [t["id"] for t in response.json()] == ["t2"]

    def test_list_with_negative_skip_rejected(self, client):
        response = client.get("/tasks", params={"skip": -1})

        assert response.status_code == 422

    def test_versioned_prefix(self, client):
        response = put_title(client, "t1", "Via v1", if_match="5", prefix="/api/v1/tasks")

        assert response.status_code == 200
        assert client.get("/api/v1/tasks/t1").headers["ETag"] == "6"
        assert client.get("/tasks/t1").json()["title"] == "Via v1"


# =============================================================================
# Identity and Tenancy
# =============================================================================

class TestTenancy:

    def test_other_workspace_cannot_read(self, client):
        response = client.get("/tasks/t1", headers={"X-User-ID": "u2", "X-Workspace-ID": "w2"})

        assert response.status_code == 404

    def test_other_workspace_cannot_update(self, client):
        response = put_title(
            client, "t1", "Hijack", if_match="5",
            headers={"X-User-ID": "u2", "X-Workspace-ID": "w2"}
        )

        assert response.status_code == 404
        assert client.get("/tasks/t1").json()["version"] == 5

    def test_workspace_tasks_are_isolated(self, client):
        headers = {"X-User-ID": "u2", "X-Workspace-ID": "w2"}
        client.post("/tasks", json={"title": "Private"}, headers=headers)

        assert [t["title"] for t in client.get("/tasks", headers=headers).json()] == ["Private"]
        assert "Private" not in [t["title"] for t in client.get("/tasks").json()]

    def test_missing_identity_rejected_when_defaults_disabled(self, event_bus):
        from fastapi.testclient import TestClient

        settings = Settings(allow_default_identity=False, log_format="text")
        app = create_app(settings=settings, store=InMemoryTaskStore(demo_tasks()), event_bus=event_bus)

        with TestClient(app) as client:
            response = client.get("/tasks/t1")
            assert response.status_code == 401
            assert response.json()["code"] == "NAO_AUTENTICADO"

            authorized = client.get(
                "/tasks/t1", headers={"X-User-ID": "u1", "X-Workspace-ID": "w1"}
            )
            assert authorized.status_code == 200


# =============================================================================
# Tracing and Notifications
# =============================================================================

class TestTracing:

    def test_every_response_has_trace_id(self, client):
        ok = client.get("/tasks/t1")
        missing = client.get("/tasks/nope")

        assert ok.headers["X-Trace-ID"]
        assert missing.headers["X-Trace-ID"] == missing.json()["trace_id"]
        assert ok.headers["X-Trace-ID"] != missing.headers["X-Trace-ID"]

    def test_response_time_header(self, client):
        assert client.get("/health").headers["X-Response-Time"].endswith("ms")

    async def test_update_publishes_event(self, async_client, event_bus):
        queue = await event_bus.subscribe("task.events")

        response = await async_client.put(
            "/tasks/t1", json={"title": "Evented"}, headers={"If-Match": "5"}
        )

        assert response.status_code == 200
        event = queue.get_nowait()
        assert event["type"] == "task.updated"
        assert event["task"] == {"id": "t1", "version": 6}
        assert event["user_id"] == "u999"


# =============================================================================
# Concurrency
# =============================================================================

class TestConcurrentUpdates:
    """Two clients read the same version and race to write."""

    async def test_same_if_match_one_wins(self, async_client):
        async def put(title):
            return await async_client.put(
                "/tasks/t2", json={"title": title}, headers={"If-Match": "3"}
            )

        responses = await asyncio.gather(put("Alice edit"), put("Bob edit"))

        statuses = sorted(r.status_code for r in responses)
        assert statuses == [200, 409]

        winner = next(r for r in responses if r.status_code == 200)
        loser = next(r for r in responses if r.status_code == 409)
        assert winner.json()["version"] == 4
        assert loser.json()["code"] == "CONFLITO_CONCORRENCIA"

        current = await async_client.get("/tasks/t2")
        assert current.json()["version"] == 4
        assert current.json()["title"] == winner.json()["title"]

    async def test_many_concurrent_writers(self, async_client):
        responses = await asyncio.gather(*[
            async_client.put(
                "/tasks/t1", json={"title": f"Writer {n}"}, headers={"If-Match": "5"}
            )
            for n in range(10)
        ])

        assert [r.status_code for r in responses].count(200) == 1
        assert [r.status_code for r in responses].count(409) == 9


# =============================================================================
# SQL Backend
# =============================================================================

class TestSqlBackedApi:

    def test_timestamps_carry_utc_offset(self, test_settings, sql_store, event_bus):
        from fastapi.testclient import TestClient

        app = create_app(settings=test_settings, store=sql_store, event_bus=event_bus)

        with TestClient(app) as client:
            fetched = client.get("/tasks/t1").json()
            updated = put_title(client, "t1", "Stored", if_match="5").json()

        for body in (fetched, updated):
            assert body["created_at"].endswith("Z")
            assert body["updated_at"].endswith("Z")
