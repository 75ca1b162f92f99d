"""
WebSocket channel for live task notifications.

Handshake: origin, per-address attempt cap, token, per-user connection cap.
Every failure closes with 1008.
"""
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from middleware.cors_handler import is_origin_allowed
from security.credential_gate import extract_bearer_token
from security.security_audit_logger import RequestOrigin, SuspiciousEventKind
from utils.client_identity import client_ip_from_scope

router = APIRouter(tags=["realtime"])
logger = logging.getLogger(__name__)


async def _reject(websocket: WebSocket, origin: RequestOrigin, reason: str, **details) -> None:
    websocket.app.state.guard_services.audit.log(SuspiciousEventKind.SOCKET_REJECTED, origin, reason=reason, **details)
    await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=reason)


def _socket_token(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token
    return extract_bearer_token(websocket.headers.get("Authorization"))


@router.websocket("/ws")
async def notifications_socket(websocket: WebSocket):
    services = websocket.app.state.guard_services
    registry = websocket.app.state.notifications
    settings = services.settings

    client_ip = client_ip_from_scope(websocket.scope, settings.trust_forwarded_for)
    origin = RequestOrigin(
        client_ip=client_ip,
        path=websocket.url.path,
        method="WEBSOCKET",
        user_agent=websocket.headers.get("User-Agent"),
    )

    if not is_origin_allowed(websocket.headers.get("Origin"), settings.allowed_origins()):
        await _reject(websocket, origin, "origin_not_allowed")
        return

    attempt_status = await services.socket_attempts.check_async(client_ip)
    if not attempt_status.allowed:
        await _reject(websocket, origin, "too_many_attempts", retry_after=attempt_status.retry_after)
        return
    await services.socket_attempts.record_failure_async(client_ip)

    outcome = services.credentials.authenticate_token(_socket_token(websocket), origin)
    if not outcome.ok:
        await _reject(websocket, origin, "authentication_failed", failure=outcome.failure.value)
        return

    claims = outcome.claims
    if registry.connection_count(claims.sub) >= registry.max_connections_per_user:
        await _reject(websocket, origin, "connection_limit", user_id=claims.sub)
        return

    await websocket.accept()
    registered = await registry.register(claims.sub, websocket, {"email": claims.email, "role": claims.role})
    if not registered:
        await _reject(websocket, origin, "connection_limit", user_id=claims.sub)
        return

    try:
        while True:
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        logger.debug(f"🔌 [WS] Socket closed by client for {claims.sub}")
    finally:
        await registry.unregister(claims.sub, websocket)
