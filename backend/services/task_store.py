# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Task storage backends.

Both stores implement the same synchronous repository contract (TaskStore)
and perform the conditional update as one atomic step:

- InMemoryTaskStore: dict guarded by a threading.Lock; check-then-write runs
  entirely inside the lock.
- SqlTaskStore: SQLAlchemy; one transaction per operation, tenant scope set
  for PostgreSQL RLS, and a single UPDATE ... WHERE version = :expected.

Usage:
    from services.task_store import InMemoryTaskStore, demo_tasks

    store = InMemoryTaskStore(demo_tasks())
    task = store.update("w1", "t1", "New title", expected_version=5)
    assert task.version == 6

Stores are called from the threadpool by TaskService; they never await.
"""

import dataclasses
import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from core.exceptions import TaskNotFoundError, VersionConflictError
from core.session_manager import managed_transaction, run_with_deadlock_retry
from core.versioning import (
    atomic_update_with_version,
    check_version_conflict,
    is_storable_version
)
from db.database import check_db_health, create_session_factory, set_workspace_scope
from models.task import Task, TaskRecord


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_task_id() -> str:
    return uuid.uuid4().hex


def demo_tasks() -> List[Task]:
    """Tasks the demo backend starts with."""
    now = _utcnow()
    return [
        Task(
            id="t1",
            workspace_id="w1",
            title="Implementar Concorrência Otimista (PUT /tasks/{id})",
            version=5,
            created_at=now,
            updated_at=now
        ),
        Task(
            id="t2",
            workspace_id="w1",
            title="Configurar RLS no PostgreSQL",
            version=3,
            created_at=now,
            updated_at=now
        ),
    ]


class TaskStore(Protocol):
    """Repository contract shared by every task storage backend."""

    def list(
        self,
        workspace_id: str,
        query: Optional[str] = None,
        skip: int = 0,
        limit: Optional[int] = None
    ) -> List[Task]:
        ...

    def get(self, workspace_id: str, task_id: str) -> Task:
        ...

    def create(self, workspace_id: str, title: str) -> Task:
        ...

    def update(self, workspace_id: str, task_id: str, title: str, expected_version: int) -> Task:
        ...

    def seed(self, tasks: Iterable[Task]) -> None:
        ...

    def check_health(self) -> dict:
        ...


# =============================================================================
# In-memory store
# =============================================================================

class InMemoryTaskStore:
    """
    Process-local task store.

    A single lock guards the dict. Reads copy out immutable Task snapshots,
    so callers never observe a half-applied write.
    """

    def __init__(self, tasks: Optional[Iterable[Task]] = None):
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.Lock()
        if tasks:
            self.seed(tasks)

    def list(
        self,
        workspace_id: str,
        query: Optional[str] = None,
        skip: int = 0,
        limit: Optional[int] = None
    ) -> List[Task]:
        with self._lock:
            tasks = [t for t in self._tasks.values() if t.workspace_id == workspace_id]

        if query:
            needle = query.lower()
            tasks = [t for t in tasks if needle in t.title.lower()]

        tasks.sort(key=lambda t: (t.created_at, t.id))
        tasks = tasks[skip:]
        if limit is not None:
            tasks = tasks[:limit]
        return tasks

    def get(self, workspace_id: str, task_id: str) -> Task:
        with self._lock:
            task = self._tasks.get(task_id)
        if task is None or task.workspace_id != workspace_id:
            raise TaskNotFoundError(task_id)
        return task

    def create(self, workspace_id: str, title: str) -> Task:
        now = _utcnow()
        task = Task(
            id=new_task_id(),
            workspace_id=workspace_id,
            title=title,
            version=1,
            created_at=now,
            updated_at=now
        )
        with self._lock:
            self._tasks[task.id] = task
        return task

    def update(self, workspace_id: str, task_id: str, title: str, expected_version: int) -> Task:
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None or current.workspace_id != workspace_id:
                raise TaskNotFoundError(task_id)

            if check_version_conflict(current.version, expected_version):
                raise VersionConflictError("Task", task_id, expected_version, current.version)

            updated = dataclasses.replace(
                current,
                title=title,
                version=current.version + 1,
                updated_at=_utcnow()
            )
            self._tasks[task_id] = updated
            return updated

    def seed(self, tasks: Iterable[Task]) -> None:
        with self._lock:
            for task in tasks:
                self._tasks.setdefault(task.id, task)

    def check_health(self) -> dict:
        with self._lock:
            task_count = len(self._tasks)
        return {"status": "healthy", "backend": "memory", "task_count": task_count}


# =============================================================================
# SQL store
# =============================================================================

class SqlTaskStore:
    """
    SQLAlchemy-backed task store.

    Every operation runs in its own transaction with the workspace scope set,
    so PostgreSQL RLS policies see the caller's tenant. Queries also filter on
    workspace_id explicitly for dialects without RLS.
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory = create_session_factory(engine)

    def _run(self, name: str, workspace_id: str, work):
        def operation():
            with self._session_factory() as session:
                with managed_transaction(session, name):
                    set_workspace_scope(session, workspace_id)
                    return work(session)

        return run_with_deadlock_retry(operation, name)

    def list(
        self,
        workspace_id: str,
        query: Optional[str] = None,
        skip: int = 0,
        limit: Optional[int] = None
    ) -> List[Task]:
        def work(session: Session) -> List[Task]:
            stmt = select(TaskRecord).where(TaskRecord.workspace_id == workspace_id)
            if query:
                stmt = stmt.where(
                    func.lower(TaskRecord.title).contains(query.lower(), autoescape=True)
                )
            stmt = stmt.order_by(TaskRecord.created_at, TaskRecord.id).offset(skip)
            if limit is not None:
                stmt = stmt.limit(limit)
            return [record.to_task() for record in session.scalars(stmt)]

        return self._run("list_tasks", workspace_id, work)

    def get(self, workspace_id: str, task_id: str) -> Task:
        def work(session: Session) -> Task:
            record = session.scalars(
                select(TaskRecord).where(
                    TaskRecord.id == task_id,
                    TaskRecord.workspace_id == workspace_id
                )
            ).one_or_none()
            if record is None:
                raise TaskNotFoundError(task_id)
            return record.to_task()

        return self._run("get_task", workspace_id, work)

    def create(self, workspace_id: str, title: str) -> Task:
        def work(session: Session) -> Task:
            now = _utcnow()
            record = TaskRecord(
                id=new_task_id(),
                workspace_id=workspace_id,
                title=title,
                version=1,
                created_at=now,
                updated_at=now
            )
            session.add(record)
            session.flush()
            return record.to_task()

        return self._run("create_task", workspace_id, work)

    def update(self, workspace_id: str, task_id: str, title: str, expected_version: int) -> Task:
        def work(session: Session) -> Task:
            record = None
            # Out-of-range versions cannot match any row and would overflow the driver
            if is_storable_version(expected_version):
                record = atomic_update_with_version(
                    session,
                    TaskRecord,
                    task_id,
                    expected_version,
                    updates={"title": title},
                    scope={"workspace_id": workspace_id}
                )
            if record is not None:
                return record.to_task()

            # Zero rows matched: tell a missing task apart from a stale version
            current_version = session.scalar(
                select(TaskRecord.version).where(
                    TaskRecord.id == task_id,
                    TaskRecord.workspace_id == workspace_id
                )
            )
            if current_version is None:
                raise TaskNotFoundError(task_id)
            raise VersionConflictError("Task", task_id, expected_version, current_version)

        return self._run(f"update_task_{task_id}", workspace_id, work)

    def seed(self, tasks: Iterable[Task]) -> None:
        for task in tasks:
            def work(session: Session, task=task) -> None:
                if session.get(TaskRecord, task.id) is None:
                    session.add(TaskRecord(**dataclasses.asdict(task)))

            self._run("seed_task", task.workspace_id, work)

    def check_health(self) -> dict:
        health = check_db_health(self._engine)
        health["backend"] = "sql"
        return health


__all__ = [
    "TaskStore",
    "InMemoryTaskStore",
    "SqlTaskStore",
    "demo_tasks",
    "new_task_id"
]
