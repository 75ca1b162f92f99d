"""
Credential gate: bearer-token authentication and role authorization.

Authentication order:
1. Extract the bearer token from the Authorization header
2. Cheap structural check (three base64url segments) before any crypto
3. Signature, expiry, issuer and claim verification

Tampering (bad format, bad signature, missing claims) is audited as
suspicious; plain expiry is not.
"""
import re
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from security.security_audit_logger import RequestOrigin, SecurityAuditLogger, SuspiciousEventKind
from utils.jwt_security import ROLES, TokenClaims, TokenError, TokenService, TokenVerificationError
from utils.security import PasswordSecurity

logger = logging.getLogger(__name__)

TOKEN_FORMAT_RE = re.compile(r"^[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+$")


class AuthFailure(Enum):
    MISSING_TOKEN = "missing_token"
    MALFORMED_FORMAT = "malformed_format"
    EXPIRED = "expired"
    INVALID = "invalid"
    MISSING_CLAIMS = "missing_claims"


AUTH_FAILURE_MESSAGES = {
    AuthFailure.MISSING_TOKEN: "Access token required",
    AuthFailure.MALFORMED_FORMAT: "Invalid token format",
    AuthFailure.EXPIRED: "Token has expired",
    AuthFailure.INVALID: "Invalid token",
    AuthFailure.MISSING_CLAIMS: "Invalid token payload",
}


@dataclass(frozen=True)
class AuthOutcome:
    claims: Optional[TokenClaims] = None
    failure: Optional[AuthFailure] = None

    @property
    def ok(self) -> bool:
        return self.claims is not None

    @property
    def message(self) -> str:
        return AUTH_FAILURE_MESSAGES.get(self.failure, "") if self.failure else ""


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    credentials = credentials.strip()
    return credentials or None


def _token_preview(token: str) -> str:
    return f"{token[:12]}..." if len(token) > 12 else token


class CredentialGate:
    """Bundles the password hasher and token service behind auth decisions."""

    def __init__(
        self,
        tokens: TokenService,
        passwords: PasswordSecurity,
        audit: SecurityAuditLogger
    ):
        self.tokens = tokens
        self.passwords = passwords
        self.audit = audit

    def issue_token(self, subject: str, email: str, role: str) -> str:
        return self.tokens.issue_token({"sub": subject, "email": email, "role": role})

    def verify_token(self, token: str) -> TokenClaims:
        return self.tokens.verify_token(token)

    def authenticate_token(self, token: Optional[str], origin: RequestOrigin) -> AuthOutcome:
        """Verify a raw token string (HTTP header or WebSocket handshake)."""
        if not token:
            return AuthOutcome(failure=AuthFailure.MISSING_TOKEN)

        if not TOKEN_FORMAT_RE.match(token):
            self.audit.log(
                SuspiciousEventKind.INVALID_TOKEN_FORMAT,
                origin,
                token_preview=_token_preview(token),
            )
            return AuthOutcome(failure=AuthFailure.MALFORMED_FORMAT)

        try:
            claims = self.tokens.verify_token(token)
        except TokenVerificationError as e:
            if e.reason is TokenError.EXPIRED:
                logger.info(f"[AUTH] Expired token presented from {origin.client_ip}")
                return AuthOutcome(failure=AuthFailure.EXPIRED)
            if e.reason is TokenError.MISSING_CLAIMS:
                self.audit.log(SuspiciousEventKind.MALFORMED_TOKEN_PAYLOAD, origin, reason=str(e))
                return AuthOutcome(failure=AuthFailure.MISSING_CLAIMS)
            self.audit.log(
                SuspiciousEventKind.INVALID_TOKEN,
                origin,
                reason=e.reason.value,
                error=str(e),
            )
            return AuthOutcome(failure=AuthFailure.INVALID)

        return AuthOutcome(claims=claims)

    def authenticate_request(self, authorization: Optional[str], origin: RequestOrigin) -> AuthOutcome:
        return self.authenticate_token(extract_bearer_token(authorization), origin)

    def authorize_role(
        self,
        claims: TokenClaims,
        allowed_roles: Iterable[str],
        origin: Optional[RequestOrigin] = None
    ) -> bool:
        """
        Allow only a known role that is on the operation's allow-list.

        An empty allow-list denies everyone. Every denial is audited.
        """
        allowed = frozenset(allowed_roles)
        if claims.role in ROLES and claims.role in allowed:
            return True

        if origin is not None:
            self.audit.log(
                SuspiciousEventKind.UNAUTHORIZED_ROLE_ACCESS,
                origin,
                user_role=claims.role,
                required_roles=sorted(allowed),
                user_id=claims.sub,
            )
        else:
            logger.warning(
                f"🚨 [AUTH] Role {claims.role} denied for user {claims.sub}; required {sorted(allowed)}"
            )
        return False
