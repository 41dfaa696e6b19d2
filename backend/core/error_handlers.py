# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
FastAPI Error Handlers for ArcaneTasks


Registers global error handlers to convert exceptions into standardized JSON responses.

Usage:
    from fastapi import FastAPI
    from core.error_handlers import register_error_handlers

    app = FastAPI()
    register_error_handlers(app)

Features:
- Catches all ArcaneTasksException subclasses
- Returns standardized JSON error responses carrying the request trace id
- Logs errors with appropriate levels
- Handles SQLAlchemy exceptions (IntegrityError, etc.)
- Handles Pydantic validation errors
- Provides fallback handler for unexpected errors
"""

import logging
from typing import Optional
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.exceptions import ArcaneTasksException

logger = logging.getLogger(__name__)


# =============================================================================
# Error Response Format
# =============================================================================

def _trace_id(request: Request) -> Optional[str]:
    return getattr(request.state, "trace_id", None)


def create_error_response(
    status_code: int,
    error_type: str,
    code: str,
    message: str,
    detail: dict = None,
    trace_id: Optional[str] = None
) -> JSONResponse:
    """
    Create standardized JSON error response.

    Format:
        {
            "error": "VersionConflictError",
            "code": "CONFLITO_CONCORRENCIA",
            "message": "Task t1 was modified by another user. ...",
            "status_code": 409,
            "trace_id": "0b6f...",
            "detail": {
                "client_version": 1,
                "database_version": 5
            }
        }
    """
    content = {
        "error": error_type,
        "code": code,
        "message": message,
        "status_code": status_code,
        "trace_id": trace_id
    }

    if detail:
        content["detail"] = detail

    headers = {"X-Trace-ID": trace_id} if trace_id else None

    return JSONResponse(
        status_code=status_code,
        content=content,
        headers=headers
    )


# =============================================================================
# Exception Handlers
# =============================================================================

async def arcanetasks_exception_handler(request: Request, exc: ArcaneTasksException) -> JSONResponse:
    """
    Handle all ArcaneTasksException subclasses.

    Converts custom exceptions to standardized JSON responses.
    Logs errors with appropriate severity levels.
    """
    trace_id = _trace_id(request)

    if exc.status_code >= 500:
        logger.error(
            f"Server error: {exc.message}",
            exc_info=True,
            extra={
                "exception_type": exc.__class__.__name__,
                "code": exc.code,
                "status_code": exc.status_code,
                "detail": exc.detail,
                "trace_id": trace_id
            }
        )
    elif exc.status_code >= 400:
        logger.warning(
            f"Client error: {exc.message}",
            extra={
                "exception_type": exc.__class__.__name__,
                "code": exc.code,
                "status_code": exc.status_code,
                "detail": exc.detail,
                "trace_id": trace_id
            }
        )

    return create_error_response(
        status_code=exc.status_code,
        error_type=exc.__class__.__name__,
        code=exc.code,
        message=exc.message,
        detail=exc.detail,
        trace_id=trace_id
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle FastAPI/Pydantic validation errors.

    Converts validation errors to standardized format.
    """
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"]
        })

    logger.warning(
        f"Validation error: {len(errors)} fields failed validation",
        extra={"validation_errors": errors, "trace_id": _trace_id(request)}
    )

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        error_type="ValidationError",
        code="VALIDACAO",
        message="Request validation failed",
        detail={"errors": errors},
        trace_id=_trace_id(request)
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """
    Handle SQLAlchemy IntegrityError (unique constraints, not-null, etc.).

    Provides user-friendly messages for database constraint violations.
    """
    error_message = str(exc.orig) if hasattr(exc, 'orig') else str(exc)

    if "unique constraint" in error_message.lower():
        message = "A record with this value already exists"
        detail_type = "unique_constraint_violation"
    elif "not null constraint" in error_message.lower():
        message = "Required field is missing"
        detail_type = "not_null_violation"
    else:
        message = "Database constraint violation"
        detail_type = "constraint_violation"

    logger.error(
        f"Database integrity error: {error_message}",
        exc_info=True,
        extra={"detail_type": detail_type, "trace_id": _trace_id(request)}
    )

    return create_error_response(
        status_code=status.HTTP_409_CONFLICT,
        error_type="DatabaseIntegrityError",
        code="CONFLITO",
        message=message,
        detail={"type": detail_type},
        trace_id=_trace_id(request)
    )


async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    Handle generic SQLAlchemy errors.

    Catches database errors not handled by specific handlers.
    """
    error_message = str(exc.orig) if hasattr(exc, 'orig') else str(exc)

    logger.error(
        f"Database error: {error_message}",
        exc_info=True,
        extra={"exception_type": exc.__class__.__name__, "trace_id": _trace_id(request)}
    )

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_type="DatabaseError",
        code="ERRO_INTERNO",
        message="Database operation failed",
        trace_id=_trace_id(request)
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all handler for unexpected exceptions.

    Logs full stack trace and returns generic error response.
    """
    logger.error(
        f"Unexpected error: {str(exc)}",
        exc_info=True,
        extra={
            "exception_type": exc.__class__.__name__,
            "request_path": request.url.path,
            "request_method": request.method,
            "trace_id": _trace_id(request)
        }
    )

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_type="InternalServerError",
        code="ERRO_INTERNO",
        message="An unexpected error occurred",
        detail={
            "exception_type": exc.__class__.__name__
        },
        trace_id=_trace_id(request)
    )


# =============================================================================
# Registration
# =============================================================================

def register_error_handlers(app: FastAPI) -> None:
    """
    Register all error handlers with FastAPI application.

    Call this function during application startup to enable
    standardized error handling across all endpoints.
    """
    # Custom ArcaneTasks exceptions
    app.add_exception_handler(ArcaneTasksException, arcanetasks_exception_handler)

    # FastAPI/Pydantic validation errors
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # SQLAlchemy database errors
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)

    # Generic catch-all for unexpected errors
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Error handlers registered successfully")


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "register_error_handlers",
    "create_error_response",
    "arcanetasks_exception_handler",
    "validation_error_handler",
    "integrity_error_handler",
    "sqlalchemy_error_handler",
    "generic_exception_handler"
]
