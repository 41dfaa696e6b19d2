# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Optimistic Locking Framework


Provides optimistic locking to prevent lost updates from concurrent modifications.

Key Features:
- Version column tracks modification count (starts at 1)
- Version travels over HTTP as ETag / If-Match
- Conflict detection when versions don't match
- Atomic compare-and-swap UPDATE for SQLAlchemy models

Usage:
    from core.versioning import parse_if_match, format_etag, atomic_update_with_version

    expected_version = parse_if_match(request.headers.get("if-match"))

    updated = atomic_update_with_version(
        session, TaskRecord, task_id, expected_version,
        updates={"title": "New title"},
        scope={"workspace_id": "w1"}
    )
    if updated is None:
        # zero rows matched: not found or stale version
        ...

    response.headers["ETag"] = format_etag(updated.version)

Concurrency Scenario:
    User A                  User B
    ─────────────────       ─────────────────
    GET /tasks/t1           GET /tasks/t1
    ETag: 5                 ETag: 5

    PUT /tasks/t1
    If-Match: 5 ✓
    → ETag: 6
                            PUT /tasks/t1
                            If-Match: 5 ✗
                            → 409 Conflict!
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type
from sqlalchemy import Column, Integer, and_, update
from sqlalchemy.orm import Session, declared_attr

from core.exceptions import VersionMissingError, InvalidVersionError

logger = logging.getLogger(__name__)

# 5, "5" or W/"5"
_IF_MATCH_PATTERN = re.compile(r'^(?:W/)?(?P<quote>"?)(?P<version>[0-9]+)(?P=quote)$')

# Upper bound of the Integer version column
MAX_VERSION = 2**31 - 1


# =============================================================================
# Version Mixin
# =============================================================================

class VersionedMixin:
    """
    Mixin that adds optimistic locking to SQLAlchemy models.

    Adds a version column that starts at 1 and is incremented by exactly one
    on every accepted write. Writes go through atomic_update_with_version()
    so the check and the increment happen in a single UPDATE statement.

    Usage:
        class TaskRecord(Base, VersionedMixin):
            __tablename__ = "tasks"
            # ... other fields
    """

    @declared_attr
    def version(cls):
        """
        Version column for optimistic locking.

        Default value: 1
        Increments on every update
        """
        return Column(Integer, nullable=False, default=1, server_default="1")


# =============================================================================
# HTTP Version Tokens
# =============================================================================

def parse_if_match(header_value: Optional[str]) -> int:
    """
    Extract the client's expected version from an If-Match header.

    Accepts a bare integer (``5``), a quoted entity tag (``"5"``) and a weak
    entity tag (``W/"5"``). Surrounding whitespace is ignored.

    Args:
        header_value: Raw header value, or None when the header is absent

    Returns:
        int: Expected version

    Raises:
        VersionMissingError: Header is absent or blank
        InvalidVersionError: Header is not a non-negative integer version
            that fits the version column
    """
    if header_value is None or not header_value.strip():
        raise VersionMissingError()

    match = _IF_MATCH_PATTERN.match(header_value.strip())
    if not match:
        raise InvalidVersionError(header_value)

    digits = match.group("version").lstrip("0") or "0"
    if len(digits) > len(str(MAX_VERSION)) or int(digits) > MAX_VERSION:
        raise InvalidVersionError(header_value)

    return int(digits)


def is_storable_version(version: int) -> bool:
    """True when the version fits the version column, so it can match a stored row."""
    return 0 <= version <= MAX_VERSION


def format_etag(version: int) -> str:
    """Render a version as the ETag header value."""
    return str(version)


def check_version_conflict(current_version: int, client_version: int) -> bool:
    """
    Check if client version conflicts with the stored version.

    Args:
        current_version: Version currently stored
        client_version: Version from the client's If-Match header

    Returns:
        bool: True if conflict detected, False otherwise
    """
    return current_version != client_version


# =============================================================================
# Atomic Update with Version Check
# =============================================================================

def atomic_update_with_version(
    db: Session,
    model_class: Type,
    instance_id: Any,
    client_version: int,
    updates: Dict[str, Any],
    scope: Optional[Dict[str, Any]] = None
):
    """
    Atomically update instance with version check.

    Uses UPDATE WHERE id=X AND version=Y pattern to ensure atomic
    compare-and-swap operation. Two writers holding the same version can
    never both succeed: the second one matches zero rows.

    Args:
        db: Database session (caller owns the transaction)
        model_class: Model class (e.g., TaskRecord)
        instance_id: Instance ID to update
        client_version: Version from client request
        updates: Dictionary of field updates
        scope: Extra equality filters (e.g. {"workspace_id": "w1"})

    Returns:
        The refreshed model instance, or None if no row matched

    SQL Generated:
        UPDATE tasks
        SET title = 'New title',
            updated_at = now,
            version = version + 1
        WHERE id = 't1' AND workspace_id = 'w1' AND version = 5
        RETURNING id;
    """
    values = {
        **updates,
        "version": model_class.version + 1,
        "updated_at": datetime.now(timezone.utc),
    }

    conditions = [
        model_class.id == instance_id,
        model_class.version == client_version,
    ]
    for column_name, column_value in (scope or {}).items():
        conditions.append(getattr(model_class, column_name) == column_value)

    stmt = (
        update(model_class)
        .where(and_(*conditions))
        .values(**values)
        .returning(model_class.id)
        .execution_options(synchronize_session=False)
    )

    updated_id = db.execute(stmt).scalar_one_or_none()

    if updated_id is None:
        logger.debug(
            f"Atomic update matched no rows for {model_class.__name__} id={instance_id}",
            extra={
                "model": model_class.__name__,
                "instance_id": instance_id,
                "client_version": client_version
            }
        )
        return None

    instance = db.get(model_class, updated_id, populate_existing=True)
    logger.debug(
        f"Atomic update succeeded for {model_class.__name__} id={instance_id}",
        extra={
            "model": model_class.__name__,
            "instance_id": instance_id,
            "client_version": client_version,
            "new_version": instance.version
        }
    )
    return instance


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "VersionedMixin",
    "MAX_VERSION",
    "parse_if_match",
    "is_storable_version",
    "format_etag",
    "check_version_conflict",
    "atomic_update_with_version"
]
