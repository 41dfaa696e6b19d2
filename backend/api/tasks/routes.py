# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from fastapi import APIRouter, Depends, Header, Query, Response
from typing import Annotated, List, Optional
from pydantic import BaseModel, StringConstraints
from datetime import datetime

from api.dependencies import get_request_context, get_task_service
from core.context import RequestContext
from core.versioning import format_etag, parse_if_match
from services.task_service import TaskService

# Also mounted under /api/v1 by main.py
router = APIRouter(prefix="/tasks", tags=["tasks"])


# Pydantic Schemas
# Length limits apply to the trimmed title
Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=500)]


class TaskTitle(BaseModel):
    title: Title


class TaskCreate(TaskTitle):
    pass


class TaskUpdate(TaskTitle):
    pass


class TaskResponse(BaseModel):
    id: str
    workspace_id: str
    title: str
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# Endpoints
@router.get("", response_model=List[TaskResponse])
async def list_tasks(
    query: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1),
    ctx: RequestContext = Depends(get_request_context),
    service: TaskService = Depends(get_task_service)
):
    """List tasks in the caller's workspace, optionally filtered by title substring"""
    return await service.list_tasks(ctx, query=query, skip=skip, limit=limit)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: str,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    service: TaskService = Depends(get_task_service)
):
    """Get a task; its current version is returned as the ETag"""
    task = await service.get_task(ctx, task_id)
    response.headers["ETag"] = format_etag(task.version)
    return task


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task(
    payload: TaskCreate,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    service: TaskService = Depends(get_task_service)
):
    """Create a task at version 1"""
    task = await service.create_task(ctx, payload.title)
    response.headers["ETag"] = format_etag(task.version)
    return task


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    payload: TaskUpdate,
    response: Response,
    if_match: Optional[str] = Header(None),
    ctx: RequestContext = Depends(get_request_context),
    service: TaskService = Depends(get_task_service)
):
    """
    Update a task's title with optimistic locking.

    The If-Match header must carry the version the client last read.

    Raises:
        VersionMissingError 400: If-Match header absent
        InvalidVersionError 400: If-Match is not an integer version
        TaskNotFoundError 404: Unknown task or task in another workspace
        VersionConflictError 409: Task was modified since the client read it
    """
    expected_version = parse_if_match(if_match)
    task = await service.update_task(ctx, task_id, payload.title, expected_version)
    response.headers["ETag"] = format_etag(task.version)
    return task
