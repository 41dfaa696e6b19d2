# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Structured Logging

Configures the standard library logging for the service and provides the
narrow logger contract the task core depends on. Call sites keep using
``logging.getLogger(__name__)`` with ``extra=``; structlog only renders.

Usage:
    from core.logging_config import configure_logging, StructuredLogger

    configure_logging(settings)

    log = StructuredLogger("services.task_service")
    log.record(logging.WARNING, "CONCURRENCY_CONFLICT", {"task_id": "t1", "expected": 1, "actual": 5})

With LOG_FORMAT=json every record is emitted as a single JSON line:
    {"timestamp": "...", "level": "warning", "service": "ArcaneTasks-API",
     "logger": "services.task_service", "message": "CONCURRENCY_CONFLICT",
     "task_id": "t1", "expected": 1, "actual": 5}
"""

import logging
import sys
from typing import Any, Dict, Optional, Protocol

import structlog


class ServiceNameAdder:
    """structlog processor that stamps every entry with the service name."""

    def __init__(self, service_name: str):
        self.service_name = service_name

    def __call__(self, logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", self.service_name)
        return event_dict


def build_json_formatter(service_name: str) -> structlog.stdlib.ProcessorFormatter:
    """
    Formatter rendering stdlib log records as JSON lines.

    Fields passed through extra= land at the top level of the entry.
    """
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ExtraAdder(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            ServiceNameAdder(service_name),
            structlog.processors.format_exc_info,
            structlog.processors.EventRenamer("message"),
            structlog.processors.JSONRenderer(default=str, ensure_ascii=False),
        ],
    )


def configure_logging(settings) -> None:
    """
    Configure root logging from application settings.

    DEBUG=true lowers the level to DEBUG; LOG_FORMAT selects JSON lines or
    the plain text format.
    """
    log_level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    if settings.log_format == "json":
        handler.setFormatter(build_json_formatter(settings.service_name))
    else:
        handler.setFormatter(
            logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)


class Logger(Protocol):
    """Logging contract used by the task core."""

    def record(self, level: int, message: str, fields: Optional[Dict[str, Any]] = None) -> None:
        ...


class StructuredLogger:
    """Logger implementation backed by the standard logging module."""

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def record(self, level: int, message: str, fields: Optional[Dict[str, Any]] = None) -> None:
        self._logger.log(level, message, extra=fields or {})


__all__ = [
    "build_json_formatter",
    "configure_logging",
    "Logger",
    "StructuredLogger"
]
