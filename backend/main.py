# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
ArcaneTasks - FastAPI Backend
Main application entry point
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import uvicorn
import logging
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Import settings for environment configuration
from config import Settings, settings as default_settings
from core.logging_config import configure_logging, StructuredLogger

# Configure logging based on environment
configure_logging(default_settings)
logger = logging.getLogger(__name__)

from api.system import health
from api.tasks import routes as tasks
from core.error_handlers import register_error_handlers
from db.database import create_db_engine, dispose_engine, init_db
from middleware.performance import PerformanceMiddleware, TRACE_HEADER
from services.event_bus import EventBus
from services.notifications import EventBusNotificationSink, NotificationSink
from services.task_service import TaskService
from services.task_store import InMemoryTaskStore, SqlTaskStore, TaskStore, demo_tasks

APP_VERSION = "0.1.0"


def build_task_store(settings: Settings):
    """
    Build the configured task store.

    Returns (store, engine); engine is None for the in-memory store, which is
    seeded immediately. The SQL store is migrated and seeded at startup.
    """
    if settings.uses_sql_store:
        engine = create_db_engine(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            echo=settings.sql_echo
        )
        return SqlTaskStore(engine), engine

    return InMemoryTaskStore(demo_tasks() if settings.seed_demo_data else None), None


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[TaskStore] = None,
    event_bus: Optional[EventBus] = None,
    sink: Optional[NotificationSink] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Everything the routes need is placed on app.state here, so the app is
    usable with or without running its lifespan. Pass store/sink to inject
    test doubles.
    """
    settings = settings or default_settings

    engine = None
    if store is None:
        store, engine = build_task_store(settings)

    event_bus = event_bus or EventBus()
    if sink is None:
        sink = EventBusNotificationSink(event_bus, settings.notification_topic)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events"""
        # Startup
        logger.info(f"Starting {settings.service_name} in {settings.environment} mode (debug={settings.debug})")

        if engine is not None:
            try:
                init_db(engine)
                logger.info("Database schema initialized successfully")
            except Exception as e:
                logger.error(f"Database initialization failed: {e}")
                logger.error("Make sure PostgreSQL is running and DATABASE_URL is correct")
                raise

            if settings.seed_demo_data:
                store.seed(demo_tasks())
                logger.info("Demo tasks seeded")

        logger.info(f"{settings.service_name} startup complete")

        yield  # Server is running

        # Shutdown
        logger.info(f"Shutting down {settings.service_name}...")
        try:
            dispose_engine(engine)
        except Exception as e:
            logger.error(f"Error disposing database engine: {e}")
        logger.info("Shutdown complete")

    app = FastAPI(
        title="ArcaneTasks API",
        description="""
        # ArcaneTasks - Multi-tenant Task Service

        - **Optimistic Locking** - PUT requires If-Match with the version last read
        - **Tenant Isolation** - tasks are scoped to the caller's workspace
        - **Change Notifications** - task.created / task.updated events
        - **Performance Monitoring** - request tracing and timing
        """,
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs",  # Swagger UI
        redoc_url="/redoc",  # ReDoc
        openapi_url="/openapi.json",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT"
        }
    )

    app.state.settings = settings
    app.state.event_bus = event_bus
    app.state.task_service = TaskService(store, sink, StructuredLogger("services.task_service"))

    # Register standardized error handlers
    register_error_handlers(app)

    # Request tracing and performance monitoring
    app.add_middleware(
        PerformanceMiddleware,
        slow_request_threshold_ms=settings.slow_request_threshold_ms
    )

    # CORS middleware (frontend dev server)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "If-Match", "Authorization", "X-User-ID", "X-Workspace-ID"],
        expose_headers=["ETag", TRACE_HEADER],
    )

    @app.get("/")
    async def root(request: Request):
        return {
            "app": request.app.state.settings.service_name,
            "version": APP_VERSION,
            "description": "Multi-tenant task service with optimistic concurrency control"
        }

    # Health check endpoints
    app.include_router(health.router)

    # Task endpoints, also served under the versioned API prefix
    app.include_router(tasks.router)
    app.include_router(tasks.router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.is_development
    )
