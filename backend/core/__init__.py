# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Core infrastructure modules for ArcaneTasks backend.

This package contains foundational components used throughout the application:

- session_manager: Transaction management with automatic commit/rollback
- versioning: Optimistic locking, If-Match parsing and ETag formatting
- exceptions / error_handlers: Standardized error handling
- logging_config: Structured logging setup
- context: Per-request caller context
"""

from .session_manager import (
    managed_transaction,
    run_with_deadlock_retry,
    TransactionContext,
    transaction_metrics
)

from .versioning import (
    VersionedMixin,
    parse_if_match,
    format_etag,
    check_version_conflict,
    atomic_update_with_version
)

from .context import RequestContext

__all__ = [
    # Transaction management
    "managed_transaction",
    "run_with_deadlock_retry",
    "TransactionContext",
    "transaction_metrics",
    # Optimistic locking
    "VersionedMixin",
    "parse_if_match",
    "format_etag",
    "check_version_conflict",
    "atomic_update_with_version",
    # Request context
    "RequestContext"
]
