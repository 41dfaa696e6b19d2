# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Transaction Management Framework

Provides context managers for safe, consistent transaction handling across the application.

Features:
- Automatic commit/rollback based on context exit
- Transaction logging and metrics
- Deadlock retry logic with exponential backoff
- Clear transaction boundaries

Usage:
    from core.session_manager import managed_transaction, run_with_deadlock_retry

    def _rename(session):
        with managed_transaction(session, "update_task") as tx:
            atomic_update_with_version(session, TaskRecord, task_id, 5, {"title": "X"})
            # Automatic commit here (or rollback on exception)

    run_with_deadlock_retry(lambda: _rename(SessionLocal()), "update_task")
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Generator, TypeVar
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError, DBAPIError
import psycopg2.errors

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Metrics and Monitoring
# =============================================================================

class TransactionMetrics:
    """
    Tracks transaction metrics for monitoring.

    Exposed through GET /health/metrics.
    """

    def __init__(self):
        """Initialize metrics tracking."""
        self._lock = threading.Lock()
        self.transaction_count = 0
        self.commit_count = 0
        self.rollback_count = 0
        self.deadlock_count = 0
        self.total_duration_ms = 0.0

    def record_commit(self, duration_ms: float):
        """Record a successful commit."""
        with self._lock:
            self.transaction_count += 1
            self.commit_count += 1
            self.total_duration_ms += duration_ms

    def record_rollback(self, duration_ms: float):
        """Record a rollback."""
        with self._lock:
            self.transaction_count += 1
            self.rollback_count += 1
            self.total_duration_ms += duration_ms

    def record_deadlock(self):
        """Record a deadlock occurrence."""
        with self._lock:
            self.deadlock_count += 1

    def get_stats(self) -> dict:
        """
        Get current metrics statistics.

        Returns:
            dict: Statistics including counts, rates, and averages
        """
        avg_duration = (
            self.total_duration_ms / self.transaction_count
            if self.transaction_count > 0
            else 0.0
        )

        commit_rate = (
            self.commit_count / self.transaction_count
            if self.transaction_count > 0
            else 0.0
        )

        return {
            "transaction_count": self.transaction_count,
            "commit_count": self.commit_count,
            "rollback_count": self.rollback_count,
            "deadlock_count": self.deadlock_count,
            "commit_rate": commit_rate,
            "avg_duration_ms": avg_duration,
            "total_duration_ms": self.total_duration_ms
        }

    def reset(self):
        """Reset all metrics to zero."""
        self.__init__()


# Global metrics instance
transaction_metrics = TransactionMetrics()


# =============================================================================
# Transaction Context Manager
# =============================================================================

class TransactionContext:
    """
    Manages a database transaction.

    Attributes:
        session: SQLAlchemy session
        name: Transaction name for logging
        start_time: Transaction start timestamp
        committed: Whether transaction was successfully committed
    """

    def __init__(self, session: Session, name: str):
        self.session = session
        self.name = name
        self.start_time = None
        self.committed = False

    def __enter__(self):
        """Enter transaction context."""
        self.start_time = time.time()
        logger.debug(f"Transaction started: {self.name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """
        Exit transaction context.

        Automatically commits on success or rolls back on exception.
        """
        duration_ms = (time.time() - self.start_time) * 1000

        if exc_type is None:
            try:
                self.session.commit()
            except Exception as e:
                logger.error(f"Transaction commit failed: {self.name} - {e}")
                self.session.rollback()
                self.committed = False
                transaction_metrics.record_rollback(duration_ms)
                raise

            self.committed = True
            transaction_metrics.record_commit(duration_ms)
            logger.debug(
                f"Transaction committed: {self.name} ({duration_ms:.2f}ms)",
                extra={
                    "transaction_name": self.name,
                    "duration_ms": duration_ms,
                    "committed": True
                }
            )
        else:
            self.session.rollback()
            self.committed = False
            transaction_metrics.record_rollback(duration_ms)
            logger.debug(
                f"Transaction rolled back: {self.name} ({duration_ms:.2f}ms) "
                f"due to {exc_type.__name__}: {exc_val}",
                extra={
                    "transaction_name": self.name,
                    "duration_ms": duration_ms,
                    "committed": False,
                    "error_type": exc_type.__name__
                }
            )

        # Don't suppress exceptions - let them propagate
        return False


# =============================================================================
# Context Manager Functions
# =============================================================================

@contextmanager
def managed_transaction(session: Session, name: str) -> Generator[TransactionContext, None, None]:
    """
    Create a managed database transaction with automatic commit/rollback.

    Args:
        session: SQLAlchemy session
        name: Transaction name for logging/metrics

    Yields:
        TransactionContext: Transaction context

    Example:
        with managed_transaction(db, "create_task"):
            db.add(TaskRecord(...))
            # Auto-commits here
    """
    with TransactionContext(session, name) as tx:
        yield tx


def is_deadlock(error: Exception) -> bool:
    """Check whether a DBAPI error is a Postgres deadlock."""
    return isinstance(getattr(error, "orig", None), psycopg2.errors.DeadlockDetected)


def run_with_deadlock_retry(
    operation: Callable[[], T],
    name: str,
    max_retries: int = 3,
    retry_delay: float = 0.1
) -> T:
    """
    Run a transactional operation, retrying it when Postgres reports a deadlock.

    The operation must open its own session and transaction so that each
    attempt starts from a clean state.

    Args:
        operation: Zero-argument callable performing one full transaction
        name: Transaction name for logging
        max_retries: Maximum attempts (default: 3)
        retry_delay: Initial retry delay in seconds, doubled per attempt

    Returns:
        Whatever the operation returns
    """
    attempts = 0

    while True:
        attempts += 1
        try:
            return operation()
        except (OperationalError, DBAPIError) as e:
            if not is_deadlock(e):
                raise

            transaction_metrics.record_deadlock()
            if attempts >= max_retries:
                logger.error(
                    f"Transaction {name} failed after {max_retries} attempts due to deadlocks"
                )
                raise

            delay = retry_delay * (2 ** (attempts - 1))
            logger.warning(
                f"Deadlock detected in transaction {name}, "
                f"retrying ({attempts}/{max_retries}) after {delay}s"
            )
            time.sleep(delay)


__all__ = [
    "TransactionContext",
    "TransactionMetrics",
    "managed_transaction",
    "run_with_deadlock_retry",
    "is_deadlock",
    "transaction_metrics"
]
