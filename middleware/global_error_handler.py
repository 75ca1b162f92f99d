"""
Global error handling.

GlobalErrorMiddleware sits inside the CORS/origin layers and outside the
guard pipeline: it assigns X-Request-ID, adds security headers, and turns any
unhandled exception into a generic 500 with the stack trace kept server-side.
Exception handlers give every expected error the ``{"error": ...}`` shape.
"""
import time
import uuid
import logging
from typing import Callable, Dict

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from security.patterns import safe_field_label
from utils.exceptions import InternalError, TaskGuardError

logger = logging.getLogger(__name__)

SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": (
        "default-src 'self'; img-src 'self' data: blob:; style-src 'self' 'unsafe-inline'; "
        "script-src 'self'; connect-src 'self' ws: wss:; frame-ancestors 'none'; object-src 'none'"
    ),
}


class GlobalErrorMiddleware(BaseHTTPMiddleware):
    """
    Ensures every response includes:
    - X-Request-ID for tracing
    - security headers
    - a JSON body, even when a handler blew up
    """

    def __init__(self, app: ASGIApp, production: bool = False):
        super().__init__(app)
        self.headers = dict(SECURITY_HEADERS)
        if production:
            self.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(f"[{request_id}] Unhandled exception in {request.method} {request.url.path}: {e}")
            error = InternalError(f"Unhandled {e.__class__.__name__}")
            response = JSONResponse(status_code=error.status_code, content=error.to_dict())

        response.headers["X-Request-ID"] = request_id
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)

        elapsed = (time.perf_counter() - start_time) * 1000
        if response.status_code >= 500:
            logger.error(f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} ({elapsed:.1f}ms)")
        return response


def _field_name(loc) -> str:
    parts = [str(part) for part in loc if part not in ("body", "query", "path")]
    if not parts:
        return "request"
    return safe_field_label(".".join(parts))


def _error_message(error) -> str:
    if error.get("type") == "extra_forbidden":
        return "Unexpected field"
    return error.get("msg", "Invalid value")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(TaskGuardError)
    async def task_guard_error_handler(request: Request, exc: TaskGuardError):
        request_id = getattr(request.state, "request_id", "unknown")
        if exc.status_code >= 500:
            logger.error(f"[{request_id}] {exc.category.value} {exc.__class__.__name__}: {exc.message}")
        else:
            logger.info(f"[{request_id}] {exc.status_code} {exc.category.value}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers or None)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # Messages only; submitted values are never echoed back.
        errors = [
            {"field": _field_name(error.get("loc", ())), "message": _error_message(error)}
            for error in exc.errors()
        ]
        first = errors[0] if errors else {"field": "request", "message": "Invalid request"}
        return JSONResponse(
            status_code=400,
            content={
                "error": f"Invalid value for '{first['field']}': {first['message']}",
                "details": errors,
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            message = "Route not found"
        elif exc.status_code == 405:
            message = "Method not allowed"
        else:
            message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=exc.headers)
