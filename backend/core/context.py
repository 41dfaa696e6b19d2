# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Per-request caller context.

Produced by the authentication dependency (api.dependencies.get_request_context)
and passed explicitly into the task service. Storage uses workspace_id for
tenant scoping; user_id is attached to emitted notifications.
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RequestContext:
    user_id: str
    workspace_id: str
    trace_id: Optional[str] = None
