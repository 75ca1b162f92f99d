"""
Service bundle owning the shared counter tables.

One instance per app: every table (general rate, auth rate, brute force,
socket attempts) lives here and is injected where needed, never module-global.
"""
import time
import logging
from dataclasses import dataclass
from typing import Callable

from config import Settings
from security.credential_gate import CredentialGate
from security.security_audit_logger import SecurityAuditLogger
from security.upload_gate import UploadGate
from services.attempt_tracker import AttemptStore, AttemptTracker, InMemoryAttemptStore
from services.rate_controller import RateController
from utils.input_sanitization import InputSanitizer
from utils.jwt_security import TokenService
from utils.security import PasswordSecurity

logger = logging.getLogger(__name__)


@dataclass
class GuardServices:
    settings: Settings
    clock: Callable[[], float]
    audit: SecurityAuditLogger
    api_limiter: RateController
    auth_limiter: RateController
    brute_force: AttemptTracker
    socket_attempts: AttemptTracker
    credentials: CredentialGate
    uploads: UploadGate
    sanitizer: InputSanitizer


def _attempt_store(settings: Settings, prefix: str) -> AttemptStore:
    if settings.redis_url:
        from services.redis_attempt_store import RedisAttemptStore
        return RedisAttemptStore.from_url(settings.redis_url, prefix, settings.redis_timeout)
    return InMemoryAttemptStore()


def build_guard_services(settings: Settings, clock: Callable[[], float] = time.time) -> GuardServices:
    audit = SecurityAuditLogger()

    api_limiter = RateController(
        name="api",
        hard_limit=settings.api_rate_hard_limit,
        window_seconds=settings.api_rate_window_seconds,
        soft_limit=settings.api_rate_soft_limit,
        delay_ms=settings.api_rate_delay_ms,
        exempt_networks=settings.trusted_networks,
        clock=clock,
    )
    auth_limiter = RateController(
        name="auth",
        hard_limit=settings.auth_rate_limit,
        window_seconds=settings.auth_rate_window_seconds,
        clock=clock,
    )
    brute_force = AttemptTracker(
        name="BruteForce",
        max_attempts=settings.max_login_attempts,
        window_seconds=settings.lockout_window_seconds,
        store=_attempt_store(settings, "brute_force"),
        clock=clock,
    )
    socket_attempts = AttemptTracker(
        name="WSConnect",
        max_attempts=settings.ws_max_attempts_per_ip,
        window_seconds=settings.ws_attempt_window_seconds,
        store=_attempt_store(settings, "ws_connect"),
        clock=clock,
    )
    credentials = CredentialGate(
        tokens=TokenService(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            issuer=settings.jwt_issuer,
            expiration_hours=settings.jwt_expiration_hours,
        ),
        passwords=PasswordSecurity(rounds=settings.password_hash_rounds),
        audit=audit,
    )

    logger.info(
        f"✅ [Guards] api {settings.api_rate_soft_limit}/{settings.api_rate_hard_limit} per "
        f"{settings.api_rate_window_seconds}s, auth {settings.auth_rate_limit}, "
        f"brute force {settings.max_login_attempts} per {settings.lockout_window_seconds}s"
    )

    return GuardServices(
        settings=settings,
        clock=clock,
        audit=audit,
        api_limiter=api_limiter,
        auth_limiter=auth_limiter,
        brute_force=brute_force,
        socket_attempts=socket_attempts,
        credentials=credentials,
        uploads=UploadGate(max_size=settings.max_file_size),
        sanitizer=InputSanitizer(
            default_max_length=settings.sanitize_max_length,
            field_limits=settings.sanitize_field_limits,
        ),
    )
