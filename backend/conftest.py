# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Pytest Configuration and Fixtures for ArcaneTasks Backend Tests.

Provides task stores (in-memory and SQLite-backed), an application wired to
them, and sync/async HTTP clients.
"""

import pytest
import httpx
from fastapi.testclient import TestClient

from config import Settings
from db.database import create_db_engine, dispose_engine, init_db
from main import create_app
from middleware.performance import performance_metrics
from services.event_bus import EventBus
from services.task_store import InMemoryTaskStore, SqlTaskStore, demo_tasks


@pytest.fixture
def test_settings():
    """Settings isolated from the developer's .env."""
    return Settings(
        environment="testing",
        task_store_backend="memory",
        seed_demo_data=True,
        allow_default_identity=True,
        log_format="text"
    )


@pytest.fixture
def memory_store():
    """In-memory store seeded with the demo tasks (t1 at v5, t2 at v3)."""
    return InMemoryTaskStore(demo_tasks())


@pytest.fixture
def sqlite_engine(tmp_path):
    """
    File-backed SQLite engine.

    A file database (rather than :memory:) gives each thread its own
    connection, which the concurrency tests rely on.
    """
    engine = create_db_engine(f"sqlite:///{tmp_path / 'tasks.db'}")
    init_db(engine)

    yield engine

    dispose_engine(engine)


@pytest.fixture
def sql_store(sqlite_engine):
    """SQL store seeded with the demo tasks."""
    store = SqlTaskStore(sqlite_engine)
    store.seed(demo_tasks())
    return store


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def app(test_settings, memory_store, event_bus):
    return create_app(settings=test_settings, store=memory_store, event_bus=event_bus)


@pytest.fixture
def client(app):
    """Synchronous test client (runs the app lifespan)."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
async def async_client(app):
    """Async client for issuing truly concurrent requests."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture(autouse=True)
def reset_performance_metrics():
    performance_metrics.reset()
    yield
