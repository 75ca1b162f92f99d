"""
Request guard pipeline.

An explicit, ordered list of guard objects. Each guard inspects the shared
GuardContext and returns a GuardDecision; the driver stops at the first
REJECT and accumulates DELAYs. Guards never raise for expected outcomes;
anything that does escape is an internal failure for the outer error layer.

Order (a contract, not a detail):
    ApiRateGuard -> BruteForceGuard -> AuthRateGuard -> PatternGuard
    -> SanitizeGuard -> AuthenticationGuard -> AuthorizationGuard
    -> UploadPrecheckGuard
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from starlette.concurrency import run_in_threadpool

from middleware.route_policies import RoutePolicy
from security.credential_gate import CredentialGate
from security.patterns import (
    matches_suspicious_request,
    redact_sensitive,
    safe_field_label,
    scan_payload,
)
from security.security_audit_logger import RequestOrigin, SecurityAuditLogger, SuspiciousEventKind
from security.upload_gate import REJECTION_MESSAGES, UploadRejection
from services.attempt_tracker import AttemptTracker
from services.rate_controller import RateAction, RateController
from utils.client_identity import brute_force_key
from utils.exceptions import (
    AuthError,
    ClientInputError,
    PermissionDeniedError,
    RateExceededError,
    TaskGuardError,
    UploadRejectedError,
)
from utils.input_sanitization import InputSanitizer, neutralize_operator_keys
from utils.jwt_security import TokenClaims

logger = logging.getLogger(__name__)

# Multipart framing allowance on top of the file size limit.
MULTIPART_OVERHEAD_BYTES = 64 * 1024


class GuardAction(Enum):
    CONTINUE = "continue"
    DELAY = "delay"
    REJECT = "reject"


@dataclass(frozen=True)
class GuardDecision:
    action: GuardAction
    status_code: int = 200
    body: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)
    delay_ms: int = 0

    @classmethod
    def proceed(cls) -> "GuardDecision":
        return cls(GuardAction.CONTINUE)

    @classmethod
    def delay(cls, delay_ms: int) -> "GuardDecision":
        return cls(GuardAction.DELAY, delay_ms=delay_ms)

    @classmethod
    def from_error(cls, error: TaskGuardError) -> "GuardDecision":
        return cls(GuardAction.REJECT, status_code=error.status_code, body=error.to_dict(), headers=dict(error.headers))


CONTINUE = GuardDecision.proceed()


@dataclass
class GuardContext:
    """Per-request state shared by the guards."""
    method: str
    path: str
    client_ip: str
    policy: RoutePolicy
    headers: Dict[str, str] = field(default_factory=dict)
    raw_query: str = ""
    query: Dict[str, Any] = field(default_factory=dict)
    body: Any = None
    content_length: Optional[int] = None
    claims: Optional[TokenClaims] = None
    brute_force_key: Optional[str] = None
    auth_rate_counted: bool = False
    delay_ms: int = 0
    response_headers: Dict[str, str] = field(default_factory=dict)

    @property
    def origin(self) -> RequestOrigin:
        return RequestOrigin(
            client_ip=self.client_ip,
            path=self.path,
            method=self.method,
            user_agent=self.headers.get("user-agent"),
        )


class Guard(Protocol):
    name: str

    def check(self, ctx: GuardContext) -> GuardDecision: ...


class ApiRateGuard:
    """General API limiter; trusted networks bypass it."""
    name = "api_rate"

    def __init__(self, controller: RateController, audit: SecurityAuditLogger):
        self.controller = controller
        self.audit = audit

    def check(self, ctx: GuardContext) -> GuardDecision:
        if not ctx.policy.rate_limited:
            return CONTINUE

        decision = self.controller.admit(ctx.client_ip)
        if decision.exempt:
            return CONTINUE

        ctx.response_headers["X-RateLimit-Limit"] = str(decision.limit)
        ctx.response_headers["X-RateLimit-Remaining"] = str(decision.remaining)

        if decision.action is RateAction.REJECT:
            self.audit.log(SuspiciousEventKind.RATE_LIMIT_EXCEEDED, ctx.origin, limiter=self.controller.name)
            return GuardDecision.from_error(RateExceededError(
                "Too many requests, please try again later",
                retry_after=decision.retry_after,
                headers={
                    "Retry-After": str(decision.retry_after),
                    "X-RateLimit-Limit": str(decision.limit),
                    "X-RateLimit-Remaining": "0",
                },
            ))

        if decision.action is RateAction.DELAY:
            return GuardDecision.delay(decision.delay_ms)

        return CONTINUE


class BruteForceGuard:
    """Blocks a client on a credential route after too many failures."""
    name = "brute_force"

    def __init__(self, tracker: AttemptTracker, audit: SecurityAuditLogger):
        self.tracker = tracker
        self.audit = audit

    @property
    def blocking(self) -> bool:
        return self.tracker.blocking

    def check(self, ctx: GuardContext) -> GuardDecision:
        if not ctx.policy.brute_force:
            return CONTINUE

        key = brute_force_key(ctx.client_ip, ctx.path)
        ctx.brute_force_key = key
        status = self.tracker.check(key)
        if status.allowed:
            return CONTINUE

        minutes = max(1, self.tracker.window_seconds // 60)
        self.audit.log(
            SuspiciousEventKind.BRUTE_FORCE_BLOCKED,
            ctx.origin,
            attempts=self.tracker.max_attempts,
            retry_after=status.retry_after,
        )
        return GuardDecision.from_error(RateExceededError(
            f"Too many failed attempts. Please try again in {minutes} minutes.",
            retry_after=self.tracker.window_seconds,
            headers={"Retry-After": str(status.retry_after)},
        ))


class AuthRateGuard:
    """Auth limiter; successful responses are refunded after the fact."""
    name = "auth_rate"

    def __init__(self, controller: RateController, audit: SecurityAuditLogger):
        self.controller = controller
        self.audit = audit

    def check(self, ctx: GuardContext) -> GuardDecision:
        if not ctx.policy.auth_limited:
            return CONTINUE

        decision = self.controller.admit(ctx.client_ip)
        if decision.action is RateAction.REJECT:
            self.audit.log(SuspiciousEventKind.RATE_LIMIT_EXCEEDED, ctx.origin, limiter=self.controller.name)
            return GuardDecision.from_error(RateExceededError(
                "Too many authentication attempts, please try again later",
                retry_after=decision.retry_after,
            ))

        ctx.auth_rate_counted = True
        return CONTINUE

    def after_response(self, ctx: GuardContext, status_code: int) -> None:
        if ctx.auth_rate_counted and status_code < 400:
            self.controller.refund(ctx.client_ip)


class PatternGuard:
    """Rejects injection/XSS/traversal signatures in path, query or body."""
    name = "patterns"
    reads_body = True

    def __init__(self, audit: SecurityAuditLogger):
        self.audit = audit

    def _reject(self, ctx: GuardContext, field_path: str, kind: str) -> GuardDecision:
        event = SuspiciousEventKind.INJECTION_ATTEMPT if kind == "injection" else SuspiciousEventKind.SUSPICIOUS_PATTERN
        # Raw payload goes to the server log only.
        self.audit.log(event, ctx.origin, field=field_path, signature=kind, query=ctx.raw_query, body=redact_sensitive(ctx.body))
        label = safe_field_label(field_path)
        return GuardDecision.from_error(ClientInputError(f"Invalid input detected in field '{label}'", details={"field": label}))

    def check(self, ctx: GuardContext) -> GuardDecision:
        request_line = f"{ctx.path}?{ctx.raw_query}" if ctx.raw_query else ctx.path
        if matches_suspicious_request(request_line):
            self.audit.log(SuspiciousEventKind.SUSPICIOUS_PATTERN, ctx.origin, request_line=request_line)

        segments = [segment for segment in ctx.path.split("/") if segment]
        found = scan_payload(segments, "path")
        if found:
            return self._reject(ctx, found.field, found.kind)

        found = scan_payload(ctx.query, "query")
        if found:
            return self._reject(ctx, found.field, found.kind)

        if ctx.body is not None:
            found = scan_payload(ctx.body, "body")
            if found:
                return self._reject(ctx, found.field, found.kind)

        return CONTINUE


class SanitizeGuard:
    """Replaces query and body with their sanitized forms."""
    name = "sanitize"
    reads_body = True

    def __init__(self, sanitizer: InputSanitizer):
        self.sanitizer = sanitizer

    def check(self, ctx: GuardContext) -> GuardDecision:
        ctx.query = self.sanitizer.sanitize(neutralize_operator_keys(ctx.query))
        if ctx.body is not None:
            ctx.body = self.sanitizer.sanitize(neutralize_operator_keys(ctx.body))
        return CONTINUE


class AuthenticationGuard:
    name = "authentication"

    def __init__(self, gate: CredentialGate):
        self.gate = gate

    def check(self, ctx: GuardContext) -> GuardDecision:
        if not ctx.policy.auth_required:
            return CONTINUE

        outcome = self.gate.authenticate_request(ctx.headers.get("authorization"), ctx.origin)
        if not outcome.ok:
            return GuardDecision.from_error(AuthError(outcome.message))

        ctx.claims = outcome.claims
        return CONTINUE


class AuthorizationGuard:
    name = "authorization"

    def __init__(self, gate: CredentialGate):
        self.gate = gate

    def check(self, ctx: GuardContext) -> GuardDecision:
        if ctx.policy.roles is None:
            return CONTINUE
        if ctx.claims is None or not self.gate.authorize_role(ctx.claims, ctx.policy.roles, ctx.origin):
            return GuardDecision.from_error(PermissionDeniedError("Insufficient permissions"))
        return CONTINUE


class UploadPrecheckGuard:
    """Cheap size check on upload routes before the multipart body is read."""
    name = "upload_precheck"

    def __init__(self, max_file_size: int, audit: SecurityAuditLogger):
        self.max_file_size = max_file_size
        self.audit = audit

    def check(self, ctx: GuardContext) -> GuardDecision:
        if not ctx.policy.upload or ctx.content_length is None:
            return CONTINUE
        if ctx.content_length > self.max_file_size + MULTIPART_OVERHEAD_BYTES:
            self.audit.log(
                SuspiciousEventKind.UPLOAD_REJECTED,
                ctx.origin,
                reason=UploadRejection.TOO_LARGE.value,
                content_length=ctx.content_length,
            )
            return GuardDecision.from_error(UploadRejectedError(
                REJECTION_MESSAGES[UploadRejection.TOO_LARGE],
                reason=UploadRejection.TOO_LARGE.value,
            ))
        return CONTINUE


class RequestGuardPipeline:
    """
    Runs guards in order; first REJECT wins, DELAYs add up.

    The leading guards that never look at the body (rate limiters, brute
    force) form the admission phase and run before the body is buffered.
    Guards backed by a network store run in the threadpool.
    """

    def __init__(self, guards: List[Guard]):
        self.guards = list(guards)
        self.admission_size = len(self.guards)
        for index, guard in enumerate(self.guards):
            if getattr(guard, "reads_body", False):
                self.admission_size = index
                break

    @property
    def names(self) -> List[str]:
        return [guard.name for guard in self.guards]

    @property
    def admission_guards(self) -> List[Guard]:
        return self.guards[:self.admission_size]

    @property
    def inspection_guards(self) -> List[Guard]:
        return self.guards[self.admission_size:]

    def _settle(self, guard: Guard, decision: GuardDecision, ctx: GuardContext) -> Optional[GuardDecision]:
        if decision.action is GuardAction.REJECT:
            logger.info(
                f"[Guard] {guard.name} rejected {ctx.method} {ctx.path} "
                f"from {ctx.client_ip} with {decision.status_code}"
            )
            return decision
        if decision.action is GuardAction.DELAY:
            ctx.delay_ms += decision.delay_ms
        return None

    @staticmethod
    def _outcome(ctx: GuardContext) -> GuardDecision:
        if ctx.delay_ms:
            return GuardDecision.delay(ctx.delay_ms)
        return CONTINUE

    def run(self, ctx: GuardContext) -> GuardDecision:
        """Run every guard inline."""
        for guard in self.guards:
            rejected = self._settle(guard, guard.check(ctx), ctx)
            if rejected:
                return rejected
        return self._outcome(ctx)

    async def _run_phase(self, guards: List[Guard], ctx: GuardContext) -> GuardDecision:
        for guard in guards:
            if getattr(guard, "blocking", False):
                decision = await run_in_threadpool(guard.check, ctx)
            else:
                decision = guard.check(ctx)
            rejected = self._settle(guard, decision, ctx)
            if rejected:
                return rejected
        return self._outcome(ctx)

    async def admit(self, ctx: GuardContext) -> GuardDecision:
        return await self._run_phase(self.admission_guards, ctx)

    async def inspect(self, ctx: GuardContext) -> GuardDecision:
        return await self._run_phase(self.inspection_guards, ctx)

    def after_response(self, ctx: GuardContext, status_code: int) -> None:
        """Let guards observe the final status (auth limiter refunds)."""
        for guard in self.guards:
            hook = getattr(guard, "after_response", None)
            if hook is not None:
                hook(ctx, status_code)


def build_pipeline(services) -> RequestGuardPipeline:
    """Standard guard order over a GuardServices bundle."""
    return RequestGuardPipeline([
        ApiRateGuard(services.api_limiter, services.audit),
        BruteForceGuard(services.brute_force, services.audit),
        AuthRateGuard(services.auth_limiter, services.audit),
        PatternGuard(services.audit),
        SanitizeGuard(services.sanitizer),
        AuthenticationGuard(services.credentials),
        AuthorizationGuard(services.credentials),
        UploadPrecheckGuard(services.settings.max_file_size, services.audit),
    ])
