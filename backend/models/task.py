# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Task Database Model
"""
from dataclasses import dataclass
from sqlalchemy import Column, String, DateTime, Index
from db.database import Base
from core.versioning import VersionedMixin
import datetime


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    # SQLite drops the offset; stored values are always UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


# Task Model
class TaskRecord(Base, VersionedMixin):
    __tablename__ = 'tasks'

    id = Column(String(64), primary_key=True)
    workspace_id = Column(String(64), nullable=False)
    title = Column(String(500), nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index('ix_tasks_workspace_created', 'workspace_id', 'created_at'),
    )

    def to_task(self) -> "Task":
        return Task(
            id=self.id,
            workspace_id=self.workspace_id,
            title=self.title,
            version=self.version,
            created_at=_as_utc(self.created_at),
            updated_at=_as_utc(self.updated_at)
        )


@dataclass(frozen=True)
class Task:
    """Immutable snapshot of a task handed out by every task store."""
    id: str
    workspace_id: str
    title: str
    version: int
    created_at: datetime.datetime
    updated_at: datetime.datetime
