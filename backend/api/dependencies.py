# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Shared FastAPI dependencies.

Authentication is external to this service: an upstream gateway forwards the
caller identity in X-User-ID / X-Workspace-ID. In development the configured
default identity is used when those headers are absent.
"""
from typing import Optional
from fastapi import Header, Request

from core.context import RequestContext
from core.exceptions import UnauthorizedError
from services.task_service import TaskService


def get_task_service(request: Request) -> TaskService:
    return request.app.state.task_service


async def get_request_context(
    request: Request,
    x_user_id: Optional[str] = Header(None),
    x_workspace_id: Optional[str] = Header(None)
) -> RequestContext:
    """Build the caller context for this request."""
    settings = request.app.state.settings
    trace_id = getattr(request.state, "trace_id", None)

    user_id = x_user_id
    workspace_id = x_workspace_id
    if not user_id or not workspace_id:
        if not settings.allow_default_identity:
            raise UnauthorizedError("Missing caller identity")
        user_id = user_id or settings.default_user_id
        workspace_id = workspace_id or settings.default_workspace_id

    return RequestContext(user_id=user_id, workspace_id=workspace_id, trace_id=trace_id)
