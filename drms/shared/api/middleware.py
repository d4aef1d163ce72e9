"""
Shared API Middleware
======================

Common middleware and exception handlers for the case service API.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from drms.core import (
    ApplicationException,
    ConflictException,
    ExternalServiceException,
    ResourceNotFoundException,
    ValidationException,
)
from drms.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Adds correlation ID to requests for tracing.

    An incoming X-Correlation-ID is reused; otherwise a new one is generated.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Tracks request count and response times."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.request_count = 0
        self.total_response_time = 0.0

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        self.request_count += 1

        response = await call_next(request)

        response_time = time.perf_counter() - start_time
        self.total_response_time += response_time

        response.headers["X-Response-Time"] = f"{response_time:.3f}s"
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with its outcome and latency."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    "correlation_id": correlation_id,
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
            raise

        logger.info(
            "Request completed",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "response_time_ms": int((time.perf_counter() - start_time) * 1000)
            }
        )
        return response


def _is_development(request: Request) -> bool:
    settings = getattr(request.app.state, "settings", None)
    return getattr(settings, "environment", None) == "development"


def _error_response(
    request: Request,
    status_code: int,
    message: str,
    details: Optional[dict] = None,
    debug_info: Optional[str] = None
) -> JSONResponse:
    content = {
        "detail": message,
        "status": status_code,
        "correlation_id": getattr(request.state, "correlation_id", "unknown"),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details:
        content["details"] = details
    if debug_info and _is_development(request):
        content["debug_info"] = debug_info
    return JSONResponse(status_code=status_code, content=content)


def status_code_for(exc: ApplicationException) -> int:
    if isinstance(exc, ValidationException):
        return 400
    if isinstance(exc, ResourceNotFoundException):
        return 404
    if isinstance(exc, ConflictException):
        return 409
    if isinstance(exc, ExternalServiceException):
        return 502
    return 500


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """Map application exceptions to their HTTP status."""
    status_code = status_code_for(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "Application error",
        extra={
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "status_code": status_code,
        }
    )

    if status_code >= 500:
        return _error_response(request, status_code, "Internal server error", debug_info=exc.message)
    return _error_response(request, status_code, exc.message, details=exc.details or None)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(
        request, 400, "Validation error",
        details={"errors": exc.errors()}
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Map database constraint violations by the kind of constraint."""
    error_text = str(exc.orig if exc.orig is not None else exc).lower()

    if "duplicate key" in error_text or "unique" in error_text:
        status_code, message = 409, "Resource already exists"
    elif "foreign key" in error_text:
        status_code, message = 400, "Invalid reference"
    elif "not null" in error_text or "not-null" in error_text:
        status_code, message = 400, "Required field missing"
    else:
        status_code, message = 409, "Resource conflict"

    logger.warning(
        "Database constraint violation",
        extra={
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "path": request.url.path,
            "status_code": status_code,
        }
    )
    return _error_response(request, status_code, message, debug_info=str(exc.orig))


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.

    Internal details are only exposed in development.
    """
    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )
    return _error_response(request, 500, "Internal server error", debug_info=str(exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
