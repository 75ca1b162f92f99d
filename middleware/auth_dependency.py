"""
Route dependencies.

Authentication itself happens in the guard pipeline; these dependencies
read what it published on ``request.state`` and hand routes the services
held on ``app.state``.
"""
import logging
from typing import Optional

from fastapi import Request

from security.security_audit_logger import RequestOrigin
from services.auth_service import AuthService
from services.guard_services import GuardServices
from services.notification_service import ConnectionRegistry
from services.storage_service import StorageService
from services.task_service import TaskService
from services.user_service import UserService
from utils.exceptions import AuthError
from utils.jwt_security import TokenClaims

logger = logging.getLogger(__name__)


def get_current_claims(request: Request) -> TokenClaims:
    """
    Claims verified by the pipeline.

    Raises:
        AuthError: if the route was reached without an authenticated policy.
    """
    claims: Optional[TokenClaims] = getattr(request.state, "claims", None)
    if claims is None:
        logger.error(f"🚫 [AUTH] {request.method} {request.url.path} reached without verified claims")
        raise AuthError("Access token required")
    return claims


def get_brute_force_key(request: Request) -> Optional[str]:
    return getattr(request.state, "brute_force_key", None)


def get_request_origin(request: Request) -> RequestOrigin:
    return RequestOrigin(
        client_ip=getattr(request.state, "client_ip", None) or (request.client.host if request.client else "unknown"),
        path=request.url.path,
        method=request.method,
        user_agent=request.headers.get("User-Agent"),
    )


def get_guard_services(request: Request) -> GuardServices:
    return request.app.state.guard_services


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_task_service(request: Request) -> TaskService:
    return request.app.state.task_service


def get_storage_service(request: Request) -> StorageService:
    return request.app.state.storage_service


def get_notifications(request: Request) -> ConnectionRegistry:
    return request.app.state.notifications
