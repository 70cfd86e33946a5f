"""
Application Middleware for the VideoTube API.

Cross-cutting request handling: correlation IDs, error translation into the
response envelope, and request timing.

Key Middleware Components:
- `CorrelationMiddleware`: Assigns a correlation ID to every request and echoes
  it in the `X-Correlation-ID` response header.
- `ErrorHandlingMiddleware`: Turns `VideoTubeError` subclasses into
  `{statusCode, data, message, success}` error envelopes with the matching
  status code, and any other exception into a logged 500.
- `PerformanceMiddleware`: Logs request start and completion, adds the
  `X-Process-Time` header and flags slow requests.
- `register_exception_handlers`: Routes FastAPI's own `HTTPException` and
  request validation failures through the same envelope.
"""

import time
import uuid
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from .logging_config import set_correlation_id, get_logger
from .exceptions import VideoTubeError

logger = get_logger("core.middleware")

SLOW_REQUEST_SECONDS = 1.0


def create_error_response(
    status_code: int,
    message: str,
    error_code: str,
    correlation_id: Optional[str] = None,
    details: Optional[dict] = None,
) -> JSONResponse:
    """Create standardized error envelope"""
    content = {
        "statusCode": status_code,
        "data": None,
        "message": message,
        "success": False,
        "errors": {"code": error_code},
    }
    if details:
        content["errors"]["details"] = details
    if correlation_id:
        content["errors"]["correlationId"] = correlation_id
    return JSONResponse(status_code=status_code, content=content)


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation IDs to requests"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = (
            request.headers.get("X-Correlation-ID")
            or request.headers.get("X-Request-ID")
            or str(uuid.uuid4())
        )

        set_correlation_id(correlation_id)
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware for centralized error handling"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except VideoTubeError as e:
            server_side = e.status_code >= 500
            log = logger.error if server_side else logger.warning
            log(
                f"Application error: {str(e)}",
                extra={
                    "error_type": type(e).__name__,
                    "error_code": e.error_code,
                    "status_code": e.status_code,
                    "reason": getattr(e, "reason", None),
                    "path": request.url.path,
                    "method": request.method,
                },
                exc_info=server_side,
            )
            return create_error_response(
                e.status_code,
                e.message,
                e.error_code,
                getattr(request.state, "correlation_id", None),
                e.details,
            )

        except Exception as e:
            logger.error(
                f"Unexpected error: {str(e)}",
                extra={
                    "error_type": type(e).__name__,
                    "path": request.url.path,
                    "method": request.method,
                },
                exc_info=True,
            )
            return create_error_response(
                500,
                "An unexpected error occurred",
                "INTERNAL_ERROR",
                getattr(request.state, "correlation_id", None),
            )


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Middleware for request timing and logging"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "query_params": dict(request.query_params),
                "client_ip": request.client.host if request.client else None,
            },
        )

        response = await call_next(request)

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))

        logger.info(
            f"Request completed: {request.method} {request.url.path} - {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "process_time_ms": round(process_time * 1000, 2),
            },
        )

        if process_time > SLOW_REQUEST_SECONDS:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "process_time_ms": round(process_time * 1000, 2),
                    "threshold_exceeded": True,
                },
            )

        return response


async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    return create_error_response(
        exc.status_code,
        str(exc.detail),
        f"HTTP_{exc.status_code}",
        getattr(request.state, "correlation_id", None),
    )


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
    return create_error_response(
        400,
        "Invalid request: " + ", ".join(fields) if fields else "Invalid request",
        "VALIDATION_ERROR",
        getattr(request.state, "correlation_id", None),
        {"fields": fields} if fields else None,
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
