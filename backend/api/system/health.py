# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Health Check and Diagnostics API

Endpoints:
- GET /health - Basic liveness check (fast, for load balancers)
- GET /health/ready - Readiness: 200 when the task store answers, 503 otherwise
- GET /health/metrics - Request, transaction and event bus metrics

Usage:
    curl http://localhost:3000/health/ready
"""

import logging
import sys
import time
import psutil
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from typing import Dict, Any
from pydantic import BaseModel

from api.dependencies import get_task_service
from core.session_manager import transaction_metrics
from middleware.performance import performance_metrics
from services.task_service import TaskService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


# =============================================================================
# Response Models
# =============================================================================

class HealthStatus(BaseModel):
    """Basic health status."""
    status: str  # "healthy", "ready", "unhealthy"
    message: str
    timestamp: float


class ReadinessStatus(BaseModel):
    """Readiness status with dependency diagnostics."""
    status: str
    dependencies: Dict[str, Dict[str, Any]]
    timestamp: float


class PerformanceMetricsResponse(BaseModel):
    """Performance metrics."""
    total_requests: int
    avg_duration_ms: float
    slow_requests: int
    errors: int
    error_rate: float
    by_endpoint: Dict[str, Dict[str, Any]]
    by_status_code: Dict[int, int]
    transactions: Dict[str, Any]
    events: Dict[str, Any]
    system: Dict[str, Any]


# =============================================================================
# Health Check Endpoints
# =============================================================================

@router.get("", response_model=HealthStatus)
async def health_check():
    """
    Basic health check endpoint.

    Fast and lightweight - suitable for liveness checks.
    """
    return HealthStatus(
        status="healthy",
        message="ArcaneTasks API is running",
        timestamp=time.time()
    )


@router.get("/ready", response_model=ReadinessStatus)
async def readiness_check(service: TaskService = Depends(get_task_service)):
    """
    Readiness check.

    Returns 200 when the task store is reachable, 503 otherwise.

    Example:
        {
            "status": "ready",
            "dependencies": {"task_store": {"status": "healthy", "backend": "sql", ...}},
            "timestamp": 1701234567.89
        }
    """
    try:
        store_health = await service.check_health()
    except Exception as e:
        logger.error(f"Task store health check failed: {e}", exc_info=True)
        store_health = {"status": "unhealthy", "error": str(e)}

    if store_health.get("status") == "healthy":
        return ReadinessStatus(
            status="ready",
            dependencies={"task_store": store_health},
            timestamp=time.time()
        )

    logger.error("HEALTH_CHECK_FAILURE", extra={"task_store": store_health})
    body = ReadinessStatus(
        status="unhealthy",
        dependencies={"task_store": store_health},
        timestamp=time.time()
    )
    return JSONResponse(status_code=503, content=body.model_dump())


@router.get("/metrics", response_model=PerformanceMetricsResponse)
async def get_performance_metrics(request: Request):
    """
    Get request metrics from the monitoring middleware, transaction
    statistics and event bus statistics.
    """
    metrics = performance_metrics.get_metrics()
    return PerformanceMetricsResponse(
        **metrics,
        transactions=transaction_metrics.get_stats(),
        events=request.app.state.event_bus.get_stats(),
        system=_get_system_resources()
    )


# =============================================================================
# Health Check Helpers
# =============================================================================

def _get_system_resources() -> Dict[str, Any]:
    """
    Get process resource usage.

    Returns:
        dict: System resource metrics
    """
    try:
        process = psutil.Process()
        return {
            "memory_rss_mb": round(process.memory_info().rss / (1024 * 1024), 2),
            "python_version": sys.version.split()[0],
            "process_uptime_seconds": round(time.time() - process.create_time(), 2)
        }
    except Exception as e:
        logger.error(f"System resource check failed: {e}", exc_info=True)
        return {
            "error": str(e)
        }


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "router"
]
