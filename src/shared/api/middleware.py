"""
HTTP middleware and exception handlers shared by every router.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core import (
    ApplicationException,
    ConcurrentModificationException,
    ConfigurationException,
    InvalidTransitionException,
    NoConfigurationFoundException,
    ResourceNotFoundException,
    ValidationException,
)
from shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with a correlation id and logs its outcome.

    The id is taken from the `X-Correlation-ID` request header when present
    and echoed back on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        started = time.perf_counter()
        log_context = {
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
        }

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request crashed",
                extra={**log_context, "error": str(e), "duration_ms": _elapsed_ms(started)}
            )
            raise

        response.headers[CORRELATION_HEADER] = correlation_id
        logger.info(
            "Request handled",
            extra={
                **log_context,
                "status_code": response.status_code,
                "duration_ms": _elapsed_ms(started),
            }
        )
        return response


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


# Subclasses must precede their bases
_STATUS_BY_EXCEPTION = (
    (ResourceNotFoundException, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionException, status.HTTP_409_CONFLICT),
    (ConcurrentModificationException, status.HTTP_409_CONFLICT),
    (ConfigurationException, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NoConfigurationFoundException, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ValidationException, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def status_for(exc: ApplicationException) -> int:
    for exc_type, code in _STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def _jsonable(details: Dict[str, Any]) -> Dict[str, Any]:
    def convert(value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, (str, int, float, bool, type(None), list, dict)):
            return value
        return str(value)

    return {key: convert(value) for key, value in details.items()}


async def application_exception_handler(
    request: Request,
    exc: ApplicationException
) -> JSONResponse:
    """Engine exceptions become JSON errors carrying the correlation id."""
    status_code = status_for(exc)
    correlation_id = _correlation_id(request)
    logger.warning(
        "Request rejected",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "status_code": status_code,
            "error_type": type(exc).__name__,
            "error_message": exc.message,
        }
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "error_type": type(exc).__name__,
            "details": _jsonable(exc.details),
            "correlation_id": correlation_id,
        }
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    correlation_id = _correlation_id(request)
    logger.exception(
        "Unhandled error",
        extra={
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "error_type": type(exc).__name__,
        }
    )

    settings = getattr(request.app.state, "settings", None)
    show_error = getattr(settings, "environment", None) == "development"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if show_error else None,
        }
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
