# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""Database package"""
from .database import (
    Base,
    create_db_engine,
    create_session_factory,
    set_workspace_scope,
    init_db,
    check_db_health,
    dispose_engine
)

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "set_workspace_scope",
    "init_db",
    "check_db_health",
    "dispose_engine"
]
