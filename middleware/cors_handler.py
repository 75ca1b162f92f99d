"""
CORS and origin policy.

Only requests with no Origin, a loopback or private-LAN Origin, or an
explicitly configured frontend Origin get past this layer. CORS headers are
left to Starlette's CORSMiddleware, which must be the outermost layer.
"""
import re
import logging
from typing import Callable, Iterable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from config import Settings
from security.security_audit_logger import RequestOrigin, SecurityAuditLogger, SuspiciousEventKind
from utils.client_identity import client_ip_from_scope

logger = logging.getLogger(__name__)

LOCAL_ORIGIN_REGEX = (
    r"^https?://("
    r"localhost|127\.0\.0\.1|\[::1\]"
    r"|192\.168\.\d{1,3}\.\d{1,3}"
    r"|10\.\d{1,3}\.\d{1,3}\.\d{1,3}"
    r")(:\d+)?$"
)
_LOCAL_ORIGIN_RE = re.compile(LOCAL_ORIGIN_REGEX)


def is_origin_allowed(origin: Optional[str], allowed_origins: Iterable[str]) -> bool:
    if not origin:
        return True
    if _LOCAL_ORIGIN_RE.match(origin):
        return True
    return origin.rstrip("/") in {o.rstrip("/") for o in allowed_origins}


class OriginPolicyMiddleware(BaseHTTPMiddleware):
    """Rejects requests from origins outside the policy with 403."""

    def __init__(self, app: ASGIApp, settings: Settings, audit: SecurityAuditLogger):
        super().__init__(app)
        self.settings = settings
        self.audit = audit
        self.allowed_origins = settings.allowed_origins()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        origin = request.headers.get("Origin")
        if is_origin_allowed(origin, self.allowed_origins):
            return await call_next(request)

        self.audit.log(
            SuspiciousEventKind.ORIGIN_REJECTED,
            RequestOrigin(
                client_ip=client_ip_from_scope(request.scope, self.settings.trust_forwarded_for),
                path=request.url.path,
                method=request.method,
                user_agent=request.headers.get("User-Agent"),
            ),
            origin=origin,
        )
        logger.warning(f"🚫 [CORS] Blocked request from origin: {origin}")
        return JSONResponse(status_code=403, content={"error": "Origin not allowed"})


def add_cors_middleware(app: FastAPI, settings: Settings) -> None:
    """
    Add CORS middleware to the app.
    This MUST be called LAST so it becomes the outermost middleware.
    """
    origins = settings.allowed_origins()

    logger.info(f"🌐 [CORS] Configuring with {len(origins)} origins plus loopback/private LAN")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_origin_regex=LOCAL_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Request-ID"],
        expose_headers=[
            "X-Request-ID",
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
        ],
        max_age=settings.cors_max_age,
    )

    logger.info("✅ [CORS] Middleware added as OUTERMOST layer")
