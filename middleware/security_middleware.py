"""
ASGI adapter for the request guard pipeline.

Runs the admission guards (rate limits, brute force) first, then buffers
JSON and urlencoded bodies (bounded), runs the remaining guards and replays
the sanitized body and query to the route.
Multipart uploads are streamed through untouched; their path and query are
still guarded. WebSocket scopes pass straight through and are checked at the
handshake instead.
"""
import json
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode

from fastapi.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from config import Settings
from middleware.guard_pipeline import GuardAction, GuardContext, RequestGuardPipeline
from middleware.route_policies import RoutePolicyTable
from utils.client_identity import client_ip_from_scope
from utils.input_sanitization import collapse_repeated_params

logger = logging.getLogger(__name__)

BODY_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


class BodyTooLarge(Exception):
    pass


class ClientDisconnected(Exception):
    pass


async def read_body(receive: Receive, limit: int) -> bytes:
    chunks: List[bytes] = []
    total = 0
    more_body = True
    while more_body:
        message = await receive()
        if message["type"] == "http.disconnect":
            raise ClientDisconnected()
        chunk = message.get("body", b"")
        total += len(chunk)
        if total > limit:
            raise BodyTooLarge()
        chunks.append(chunk)
        more_body = message.get("more_body", False)
    return b"".join(chunks)


def _body_kind(content_type: str) -> Optional[str]:
    media_type = content_type.split(";")[0].strip().lower()
    if media_type == "application/json" or media_type.endswith("+json"):
        return "json"
    if media_type == "application/x-www-form-urlencoded":
        return "form"
    return None


def _replace_header(headers: List[Tuple[bytes, bytes]], name: bytes, value: bytes) -> List[Tuple[bytes, bytes]]:
    kept = [(k, v) for k, v in headers if k.lower() != name]
    kept.append((name, value))
    return kept


class RequestGuardMiddleware:
    """Runs every HTTP request through the guard pipeline before routing."""

    def __init__(
        self,
        app: ASGIApp,
        pipeline: RequestGuardPipeline,
        settings: Settings,
        policies: Optional[RoutePolicyTable] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.app = app
        self.pipeline = pipeline
        self.settings = settings
        self.policies = policies or RoutePolicyTable()
        self.sleep = sleep

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope["method"].upper()
        path = scope["path"]
        headers: Dict[str, str] = {
            k.decode("latin-1").lower(): v.decode("latin-1") for k, v in scope.get("headers") or []
        }
        raw_query = (scope.get("query_string") or b"").decode("latin-1")
        query_pairs = parse_qsl(raw_query, keep_blank_values=True)

        content_length = None
        if headers.get("content-length", "").isdigit():
            content_length = int(headers["content-length"])

        ctx = GuardContext(
            method=method,
            path=path,
            client_ip=client_ip_from_scope(scope, self.settings.trust_forwarded_for),
            policy=self.policies.match(method, path),
            headers=headers,
            raw_query=raw_query,
            query=collapse_repeated_params(query_pairs, self.settings.param_pollution_whitelist),
            content_length=content_length,
        )

        decision = await self.pipeline.admit(ctx)
        if decision.action is GuardAction.REJECT:
            await self._respond(ctx, scope, receive, send, decision.status_code, decision.body, decision.headers)
            return

        body_kind = _body_kind(headers.get("content-type", "")) if method in BODY_METHODS else None
        raw_body = b""
        if body_kind:
            try:
                raw_body = await read_body(receive, self.settings.max_body_size)
            except BodyTooLarge:
                await self._respond(ctx, scope, receive, send, 413, {"error": "Request body too large"})
                return
            except ClientDisconnected:
                logger.info(f"[Guard] Client disconnected before body was read: {method} {path}")
                return

            if raw_body:
                try:
                    if body_kind == "json":
                        ctx.body = json.loads(raw_body)
                    else:
                        ctx.body = collapse_repeated_params(
                            parse_qsl(raw_body.decode("utf-8"), keep_blank_values=True),
                            self.settings.param_pollution_whitelist,
                        )
                except (ValueError, UnicodeDecodeError):
                    await self._respond(ctx, scope, receive, send, 400, {"error": "Malformed request body"})
                    return

        decision = await self.pipeline.inspect(ctx)
        if decision.action is GuardAction.REJECT:
            await self._respond(ctx, scope, receive, send, decision.status_code, decision.body, decision.headers)
            return

        if ctx.delay_ms:
            logger.info(f"[RateLimit] Slowing {ctx.client_ip} by {ctx.delay_ms}ms")
            await self.sleep(ctx.delay_ms / 1000)

        scope = dict(scope)
        scope["query_string"] = urlencode(ctx.query, doseq=True).encode("latin-1")
        state = scope.setdefault("state", {})
        state["claims"] = ctx.claims
        state["client_ip"] = ctx.client_ip
        state["brute_force_key"] = ctx.brute_force_key

        downstream_receive = receive
        if body_kind:
            new_body = self._encode_body(body_kind, ctx.body) if raw_body else b""
            scope["headers"] = _replace_header(
                list(scope.get("headers") or []), b"content-length", str(len(new_body)).encode("latin-1")
            )
            downstream_receive = self._replay(new_body, receive)

        await self.app(scope, downstream_receive, self._observe(ctx, send))

    @staticmethod
    def _encode_body(kind: str, body) -> bytes:
        if kind == "json":
            return json.dumps(body, ensure_ascii=False).encode("utf-8")
        return urlencode(body, doseq=True).encode("utf-8")

    @staticmethod
    def _replay(body: bytes, receive: Receive) -> Receive:
        sent = False

        async def replay() -> Message:
            nonlocal sent
            if not sent:
                sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        return replay

    def _observe(self, ctx: GuardContext, send: Send) -> Send:
        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                extra = [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in ctx.response_headers.items()]
                if extra:
                    message = dict(message)
                    message["headers"] = list(message.get("headers") or []) + extra
                self.pipeline.after_response(ctx, message["status"])
            await send(message)

        return send_wrapper

    async def _respond(
        self,
        ctx: GuardContext,
        scope: Scope,
        receive: Receive,
        send: Send,
        status_code: int,
        body: dict,
        headers: Optional[Dict[str, str]] = None
    ) -> None:
        self.pipeline.after_response(ctx, status_code)
        response_headers = dict(ctx.response_headers)
        response_headers.update(headers or {})
        response = JSONResponse(content=body, status_code=status_code, headers=response_headers or None)
        await response(scope, receive, send)
