# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Custom Exception Hierarchy for ArcaneTasks


Provides standardized exceptions for consistent error handling across the application.

Usage:
    from core.exceptions import TaskNotFoundError, VersionConflictError

    if not task:
        raise TaskNotFoundError(task_id)

    if task.version != expected_version:
        raise VersionConflictError("Task", task_id, expected_version, task.version)

Architecture:
- Base ArcaneTasksException for all custom exceptions
- HTTP-specific exceptions (NotFound, Conflict, ValidationError, etc.)
- Business logic exceptions (TaskNotFound, VersionConflict, version token errors)
- All exceptions include status_code, code and detail attributes
- Error handlers convert exceptions to standardized JSON responses

The ``code`` attribute is the stable, machine-readable identifier clients
switch on (e.g. ``CONFLITO_CONCORRENCIA``); ``message`` is for humans.
"""

from typing import Optional, Dict, Any


# =============================================================================
# Base Exception
# =============================================================================

class ArcaneTasksException(Exception):
    """
    Base exception for all ArcaneTasks custom exceptions.

    All custom exceptions should inherit from this class to ensure
    consistent error handling across the application.
    """

    default_code = "ERRO_INTERNO"

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        detail: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.default_code
        self.detail = detail or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "detail": self.detail
        }


# =============================================================================
# HTTP Status Code Exceptions (4xx Client Errors)
# =============================================================================

class BadRequestError(ArcaneTasksException):
    """400 Bad Request - Client sent invalid data."""

    default_code = "REQUISICAO_INVALIDA"

    def __init__(
        self,
        message: str = "Bad request",
        detail: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None
    ):
        super().__init__(message, status_code=400, detail=detail, code=code)


class UnauthorizedError(ArcaneTasksException):
    """401 Unauthorized - Authentication required."""

    default_code = "NAO_AUTENTICADO"

    def __init__(self, message: str = "Unauthorized", detail: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=401, detail=detail)


class ResourceNotFoundError(ArcaneTasksException):
    """404 Not Found - Resource does not exist."""

    default_code = "NAO_ENCONTRADO"

    def __init__(
        self,
        resource_type: str,
        resource_id: Any,
        detail: Optional[Dict[str, Any]] = None
    ):
        message = f"{resource_type} with id {resource_id} not found"
        super().__init__(message, status_code=404, detail=detail)


class ConflictError(ArcaneTasksException):
    """409 Conflict - Resource state conflict (e.g., version mismatch)."""

    default_code = "CONFLITO"

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=409, detail=detail)


class ValidationError(ArcaneTasksException):
    """422 Unprocessable Entity - Validation failed."""

    default_code = "VALIDACAO"

    def __init__(
        self,
        field: str,
        message: str,
        detail: Optional[Dict[str, Any]] = None
    ):
        full_message = f"Validation failed for field '{field}': {message}"
        detail = detail or {}
        detail["field"] = field
        super().__init__(full_message, status_code=422, detail=detail)


# =============================================================================
# HTTP Status Code Exceptions (5xx Server Errors)
# =============================================================================

class InternalServerError(ArcaneTasksException):
    """500 Internal Server Error - Unexpected server error."""

    def __init__(
        self,
        message: str = "Internal server error",
        detail: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, status_code=500, detail=detail)


class ServiceUnavailableError(ArcaneTasksException):
    """503 Service Unavailable - Service temporarily unavailable."""

    default_code = "INDISPONIVEL"

    def __init__(
        self,
        message: str = "Service unavailable",
        retry_after: Optional[int] = None,
        detail: Optional[Dict[str, Any]] = None
    ):
        detail = detail or {}
        if retry_after:
            detail["retry_after"] = retry_after
        super().__init__(message, status_code=503, detail=detail)


# =============================================================================
# Business Logic Exceptions
# =============================================================================

class VersionMissingError(BadRequestError):
    """Conditional update sent without an If-Match header."""

    default_code = "VERSAO_FALTANTE"

    def __init__(self):
        super().__init__("If-Match header is required for updates.")


class InvalidVersionError(BadRequestError):
    """If-Match header does not hold a non-negative integer version."""

    default_code = "VERSAO_INVALIDA"

    def __init__(self, raw_value: str):
        super().__init__(
            "If-Match must contain a valid integer version.",
            detail={"if_match": raw_value}
        )


class TaskNotFoundError(ResourceNotFoundError):
    """
    Task does not exist or belongs to another workspace.

    Both cases produce the same error so responses never reveal whether a
    task exists in a different tenant.
    """

    def __init__(self, task_id: str):
        super().__init__("Task", task_id, detail={"task_id": task_id})


class VersionConflictError(ConflictError):
    """Optimistic locking conflict detected."""

    default_code = "CONFLITO_CONCORRENCIA"

    def __init__(
        self,
        resource_type: str,
        resource_id: Any,
        client_version: int,
        database_version: int
    ):
        message = (
            f"{resource_type} {resource_id} was modified by another user. "
            f"Your version: {client_version}, current version: {database_version}. "
            f"Please reload and try again."
        )
        detail = {
            "resource_type": resource_type,
            "resource_id": resource_id,
            "client_version": client_version,
            "database_version": database_version
        }
        super().__init__(message, detail=detail)


class DatabaseError(ArcaneTasksException):
    """Database operation failed."""

    def __init__(
        self,
        operation: str,
        message: str,
        detail: Optional[Dict[str, Any]] = None
    ):
        full_message = f"Database {operation} failed: {message}"
        detail = detail or {}
        detail["operation"] = operation
        super().__init__(full_message, status_code=500, detail=detail)


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Base
    "ArcaneTasksException",

    # HTTP 4xx
    "BadRequestError",
    "UnauthorizedError",
    "ResourceNotFoundError",
    "ConflictError",
    "ValidationError",

    # HTTP 5xx
    "InternalServerError",
    "ServiceUnavailableError",

    # Business Logic
    "VersionMissingError",
    "InvalidVersionError",
    "TaskNotFoundError",
    "VersionConflictError",
    "DatabaseError"
]
