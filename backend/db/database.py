# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Database Setup - PostgreSQL (SQLite for tests)
Engine construction, session factory, tenant scoping and health checks for the task store
"""
import os
import time
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Optional
import logging

logger = logging.getLogger(__name__)

LOG_SLOW_QUERIES = os.getenv("LOG_SLOW_QUERIES", "true").lower() == "true"
SLOW_QUERY_THRESHOLD = float(os.getenv("SLOW_QUERY_THRESHOLD", "1.0"))

# Postgres session variable read by the tasks RLS policy
WORKSPACE_SETTING = "app.current_workspace_id"

# Base class for models
Base = declarative_base()


def create_db_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
    echo: bool = False
) -> Engine:
    """
    Create the SQLAlchemy engine for the task store.

    PostgreSQL gets a pooled engine with UTC sessions; SQLite (used by the
    test suite) gets thread-shareable connections.
    """
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            engine = create_engine(
                database_url,
                connect_args=connect_args,
                poolclass=StaticPool,
                echo=echo
            )
        else:
            engine = create_engine(database_url, connect_args=connect_args, echo=echo)

        # BEGIN IMMEDIATE: concurrent writers wait for the lock instead of failing on upgrade
        @event.listens_for(engine, "connect")
        def disable_pysqlite_begin(dbapi_conn, connection_record):
            dbapi_conn.isolation_level = None

        @event.listens_for(engine, "begin")
        def begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
    else:
        engine = create_engine(
            database_url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,  # Verify connections before using
            echo=echo,
            pool_recycle=3600  # Recycle connections after 1 hour
        )

        @event.listens_for(engine, "connect")
        def set_timezone(dbapi_conn, connection_record):
            """Enforce UTC timezone for all connections"""
            cursor = dbapi_conn.cursor()
            cursor.execute("SET timezone='UTC'")
            cursor.close()

    _install_slow_query_logging(engine)
    return engine


def _install_slow_query_logging(engine: Engine) -> None:
    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        """Record query start time for slow query detection"""
        conn.info.setdefault('query_start_time', []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        """Log slow queries that exceed threshold"""
        total = time.time() - conn.info['query_start_time'].pop()
        if LOG_SLOW_QUERIES and total > SLOW_QUERY_THRESHOLD:
            logger.warning(f"Slow query ({total:.2f}s): {statement[:200]}")


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create sessionmaker bound to the given engine"""
    return sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)


def set_workspace_scope(session: Session, workspace_id: str) -> None:
    """
    Scope the current transaction to a workspace for row-level security.

    On PostgreSQL this sets a transaction-local setting consumed by the
    tasks RLS policy. Other dialects have no RLS and rely on the explicit
    workspace filters every query applies.
    """
    if session.get_bind().dialect.name != "postgresql":
        return
    session.execute(
        text("SELECT set_config(:setting, :workspace_id, true)"),
        {"setting": WORKSPACE_SETTING, "workspace_id": workspace_id}
    )


def init_db(engine: Engine) -> None:
    """
    Initialize the database.

    Creates all SQLAlchemy tables. Production deployments run the Alembic
    migrations instead, which also install the RLS policy.
    """
    # Import models to register them with Base
    import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def check_db_health(engine: Engine) -> dict:
    """
    Check database health status.

    Returns:
        dict: Health status including connection pool metrics
    """
    try:
        start_time = time.time()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        response_time_ms = (time.time() - start_time) * 1000

        health = {
            "status": "healthy",
            "database": engine.dialect.name,
            "response_time_ms": round(response_time_ms, 2)
        }

        pool = engine.pool
        if hasattr(pool, "checkedout"):
            health["pool"] = {
                "pool_size": pool.size(),
                "checked_in": pool.checkedin(),
                "checked_out": pool.checkedout(),
                "overflow": pool.overflow()
            }

        return health
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": engine.dialect.name,
            "error": str(e)
        }


def dispose_engine(engine: Optional[Engine]) -> None:
    """
    Dispose database engine on shutdown.

    Gracefully closes all database connections.
    """
    if engine is None:
        return
    engine.dispose()
    logger.info("Database connections closed gracefully")
