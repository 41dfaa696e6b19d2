# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Performance Monitoring Middleware


Tracks request duration, tags every request with a trace id, logs slow
requests, and feeds the metrics exposed at /health/metrics.

Features:
- X-Trace-ID generated per request (stored on request.state.trace_id)
- Automatic request timing (X-Response-Time header)
- Slow request detection and logging
- Response status code tracking

Usage:
    from fastapi import FastAPI
    from middleware.performance import PerformanceMiddleware

    app = FastAPI()
    app.add_middleware(PerformanceMiddleware, slow_request_threshold_ms=1000)
"""

import logging
import threading
import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-ID"


class PerformanceMiddleware(BaseHTTPMiddleware):
    """
    Middleware for request tracing and performance monitoring.

    Measures request duration, logs slow requests, and tracks response codes.
    """

    def __init__(self, app: ASGIApp, slow_request_threshold_ms: float = 1000.0):
        super().__init__(app)
        self.slow_request_threshold_ms = slow_request_threshold_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = uuid.uuid4().hex
        request.state.trace_id = trace_id

        logger.debug(
            "REQUEST_RECEIVED",
            extra={
                "method": request.method,
                "url": str(request.url),
                "trace_id": trace_id
            }
        )

        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            # Log error and re-raise
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.url.path} ({duration_ms:.2f}ms)",
                exc_info=True,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": duration_ms,
                    "error": str(e),
                    "trace_id": trace_id
                }
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        response.headers[TRACE_HEADER] = trace_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        self._log_request(request, response, duration_ms, trace_id)

        return response

    def _log_request(self, request: Request, response: Response, duration_ms: float, trace_id: str):
        """
        Log request with performance metrics and record it in the collector.
        """
        is_slow = duration_ms >= self.slow_request_threshold_ms

        method = request.method
        path = request.url.path
        status_code = response.status_code

        # 4xx are already logged by the error handlers
        if status_code >= 500:
            log_level = logging.ERROR
        elif is_slow:
            log_level = logging.WARNING
        else:
            log_level = logging.DEBUG

        message = f"{method} {path} → {status_code} ({duration_ms:.2f}ms)"
        if is_slow:
            message += " [SLOW REQUEST]"

        logger.log(
            log_level,
            message,
            extra={
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": duration_ms,
                "is_slow": is_slow,
                "trace_id": trace_id
            }
        )

        route = request.scope.get("route")
        endpoint = f"{method} {route.path}" if route is not None else f"{method} {path}"
        performance_metrics.record_request(endpoint, status_code, duration_ms, is_slow)


# =============================================================================
# Performance Metrics Collector
# =============================================================================

class PerformanceMetrics:
    """
    Collects and aggregates performance metrics.

    Tracks:
    - Request counts by endpoint and status code
    - Average response times
    - Slow request counts
    - Error rates
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.metrics = {
            "total_requests": 0,
            "total_duration_ms": 0.0,
            "slow_requests": 0,
            "errors": 0,
            "by_endpoint": {},  # {endpoint: {count, total_duration, errors}}
            "by_status_code": {}  # {status_code: count}
        }

    def record_request(
        self,
        endpoint: str,
        status_code: int,
        duration_ms: float,
        is_slow: bool = False
    ):
        """Record a request in the metrics."""
        with self._lock:
            self.metrics["total_requests"] += 1
            self.metrics["total_duration_ms"] += duration_ms

            if is_slow:
                self.metrics["slow_requests"] += 1

            if status_code >= 400:
                self.metrics["errors"] += 1

            endpoint_metrics = self.metrics["by_endpoint"].setdefault(endpoint, {
                "count": 0,
                "total_duration_ms": 0.0,
                "errors": 0,
                "slow_requests": 0
            })
            endpoint_metrics["count"] += 1
            endpoint_metrics["total_duration_ms"] += duration_ms

            if status_code >= 400:
                endpoint_metrics["errors"] += 1

            if is_slow:
                endpoint_metrics["slow_requests"] += 1

            by_status = self.metrics["by_status_code"]
            by_status[status_code] = by_status.get(status_code, 0) + 1

    def get_metrics(self) -> dict:
        """Get current metrics with averages filled in."""
        with self._lock:
            metrics = {
                **self.metrics,
                "by_endpoint": {
                    endpoint: dict(data)
                    for endpoint, data in self.metrics["by_endpoint"].items()
                },
                "by_status_code": dict(self.metrics["by_status_code"])
            }

        if metrics["total_requests"] > 0:
            metrics["avg_duration_ms"] = metrics["total_duration_ms"] / metrics["total_requests"]
            metrics["error_rate"] = metrics["errors"] / metrics["total_requests"]
        else:
            metrics["avg_duration_ms"] = 0.0
            metrics["error_rate"] = 0.0

        for data in metrics["by_endpoint"].values():
            data["avg_duration_ms"] = data["total_duration_ms"] / data["count"]
            data["error_rate"] = data["errors"] / data["count"]

        return metrics

    def reset(self):
        """Reset all metrics."""
        self.__init__()


# Global metrics instance
performance_metrics = PerformanceMetrics()


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "PerformanceMiddleware",
    "PerformanceMetrics",
    "performance_metrics",
    "TRACE_HEADER"
]
