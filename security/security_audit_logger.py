"""
Security Audit Logger - Suspicious Activity Events
==================================================

Write-only audit trail for the request-defense pipeline. Each event is a
single JSON line on the ``security.audit`` logger; nothing in the app reads
events back. Emission never raises into the request path.
"""

import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("security.audit")


class SuspiciousEventKind(Enum):
    """Kinds of suspicious activity recorded by the guards."""
    SUSPICIOUS_PATTERN = "SUSPICIOUS_PATTERN"
    INJECTION_ATTEMPT = "INJECTION_ATTEMPT"
    BRUTE_FORCE_BLOCKED = "BRUTE_FORCE_BLOCKED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INVALID_TOKEN_FORMAT = "INVALID_TOKEN_FORMAT"
    INVALID_TOKEN = "INVALID_TOKEN"
    MALFORMED_TOKEN_PAYLOAD = "MALFORMED_TOKEN_PAYLOAD"
    UNAUTHORIZED_ROLE_ACCESS = "UNAUTHORIZED_ROLE_ACCESS"
    UPLOAD_REJECTED = "UPLOAD_REJECTED"
    ORIGIN_REJECTED = "ORIGIN_REJECTED"
    SOCKET_REJECTED = "SOCKET_REJECTED"


@dataclass(frozen=True)
class RequestOrigin:
    """Who sent the request and where it was going."""
    client_ip: str
    path: str
    method: str
    user_agent: Optional[str] = None


@dataclass
class SuspiciousEvent:
    """Structured audit record."""
    kind: SuspiciousEventKind
    client_ip: str
    path: str
    method: str
    user_agent: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["timestamp"] = self.timestamp.isoformat()
        return data


class SecurityAuditLogger:
    """
    Emits suspicious-activity events.

    Extra sinks (e.g. a test collector) receive every event after the log
    line is written; a failing sink is reported and otherwise ignored.
    """

    def __init__(self):
        self._sinks: List[Callable[[SuspiciousEvent], None]] = []

    def add_sink(self, sink: Callable[[SuspiciousEvent], None]) -> None:
        self._sinks.append(sink)

    def log(
        self,
        kind: SuspiciousEventKind,
        origin: RequestOrigin,
        **details: Any
    ) -> SuspiciousEvent:
        event = SuspiciousEvent(
            kind=kind,
            client_ip=origin.client_ip,
            path=origin.path,
            method=origin.method,
            user_agent=origin.user_agent,
            details=details,
        )
        try:
            audit_logger.warning(json.dumps(event.to_dict(), default=str, ensure_ascii=False))
        except (TypeError, ValueError) as e:
            logger.error(f"❌ [SECURITY] Could not serialize audit event {kind.value}: {e}")

        for sink in self._sinks:
            try:
                sink(event)
            except Exception as e:
                logger.error(f"❌ [SECURITY] Audit sink failed for {kind.value}: {e}")
        return event
