# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Task Service

Orchestrates task reads and writes on top of a TaskStore, emitting change
notifications and structured log events. Depends only on three narrow
contracts: TaskStore, NotificationSink and Logger.

Usage:
    service = TaskService(store, sink, StructuredLogger(__name__))

    task = await service.update_task(ctx, "t1", "New title", expected_version=5)

Store calls are synchronous and run in the threadpool, so concurrent
requests reach the store in parallel and rely on its atomic conditional
update for correctness.
"""

import logging
from typing import List, Optional

from starlette.concurrency import run_in_threadpool

from core.context import RequestContext
from core.exceptions import TaskNotFoundError, VersionConflictError
from core.logging_config import Logger
from models.task import Task
from services.notifications import (
    NotificationSink,
    TASK_CREATED,
    TASK_UPDATED,
    build_task_event
)
from services.task_store import TaskStore


class TaskService:

    def __init__(self, store: TaskStore, sink: NotificationSink, log: Logger):
        self.store = store
        self.sink = sink
        self.log = log

    async def list_tasks(
        self,
        ctx: RequestContext,
        query: Optional[str] = None,
        skip: int = 0,
        limit: Optional[int] = None
    ) -> List[Task]:
        return await run_in_threadpool(self.store.list, ctx.workspace_id, query, skip, limit)

    async def get_task(self, ctx: RequestContext, task_id: str) -> Task:
        try:
            return await run_in_threadpool(self.store.get, ctx.workspace_id, task_id)
        except TaskNotFoundError:
            self.log.record(
                logging.WARNING,
                "TASK_NOT_FOUND",
                {"task_id": task_id, "workspace_id": ctx.workspace_id, "trace_id": ctx.trace_id}
            )
            raise

    async def create_task(self, ctx: RequestContext, title: str) -> Task:
        task = await run_in_threadpool(self.store.create, ctx.workspace_id, title)
        self.log.record(
            logging.INFO,
            "TASK_CREATE_SUCCESS",
            {"task_id": task.id, "workspace_id": ctx.workspace_id, "trace_id": ctx.trace_id}
        )
        await self._notify(TASK_CREATED, task, ctx)
        return task

    async def update_task(
        self,
        ctx: RequestContext,
        task_id: str,
        title: str,
        expected_version: int
    ) -> Task:
        """
        Apply a conditional title update.

        Raises:
            TaskNotFoundError: Unknown task or task in another workspace
            VersionConflictError: expected_version is not the stored version
        """
        try:
            task = await run_in_threadpool(
                self.store.update, ctx.workspace_id, task_id, title, expected_version
            )
        except VersionConflictError as e:
            self.log.record(
                logging.WARNING,
                "CONCURRENCY_CONFLICT",
                {
                    "task_id": task_id,
                    "expected": expected_version,
                    "actual": e.detail.get("database_version"),
                    "trace_id": ctx.trace_id
                }
            )
            raise
        except TaskNotFoundError:
            self.log.record(
                logging.WARNING,
                "TASK_NOT_FOUND",
                {"task_id": task_id, "workspace_id": ctx.workspace_id, "trace_id": ctx.trace_id}
            )
            raise

        self.log.record(
            logging.INFO,
            "TASK_UPDATE_SUCCESS",
            {"task_id": task_id, "new_version": task.version, "trace_id": ctx.trace_id}
        )
        await self._notify(TASK_UPDATED, task, ctx)
        return task

    async def check_health(self) -> dict:
        return await run_in_threadpool(self.store.check_health)

    async def _notify(self, event_type: str, task: Task, ctx: RequestContext) -> None:
        # The write is already committed; a failed notification must not undo it
        try:
            await self.sink.publish(build_task_event(event_type, task, ctx.user_id))
        except Exception as e:
            self.log.record(
                logging.ERROR,
                "EVENT_EMIT_FAILED",
                {
                    "event_type": event_type,
                    "task_id": task.id,
                    "error": str(e),
                    "trace_id": ctx.trace_id
                }
            )
