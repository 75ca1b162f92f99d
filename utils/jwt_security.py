"""
JWT issuance and verification.
Every verification failure maps onto one closed TokenError variant.
"""
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Any, Dict, Optional

import jwt
from jwt import (
    DecodeError,
    ExpiredSignatureError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    MissingRequiredClaimError,
)

logger = logging.getLogger(__name__)

ROLES = frozenset({"USER", "ADMIN", "BOSS"})


class TokenError(Enum):
    EXPIRED = "expired"
    MALFORMED = "malformed"
    INVALID_SIGNATURE = "invalid_signature"
    MISSING_CLAIMS = "missing_claims"


class TokenVerificationError(Exception):
    """Raised by verify_token; ``reason`` says which way the token failed."""

    def __init__(self, reason: TokenError, message: str = ""):
        super().__init__(message or reason.value)
        self.reason = reason


@dataclass(frozen=True)
class TokenClaims:
    sub: str
    email: str
    role: str
    jti: str
    iat: int
    exp: int
    iss: str

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TokenClaims":
        return cls(
            sub=str(payload["sub"]),
            email=str(payload["email"]),
            role=str(payload["role"]),
            jti=str(payload.get("jti", "")),
            iat=int(payload.get("iat", 0)),
            exp=int(payload.get("exp", 0)),
            iss=str(payload.get("iss", "")),
        )


class TokenService:
    """HS256 bearer tokens with a fixed issuer."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        issuer: str = "bureau-task-manager",
        expiration_hours: int = 24
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.issuer = issuer
        self.expiration = timedelta(hours=expiration_hours)

    def issue_token(self, claims: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        """
        Sign a token for ``claims`` (at least sub, email and role).

        Adds iat, exp, a fresh jti and the issuer.
        """
        now = datetime.now(timezone.utc)
        payload = dict(claims)
        payload.update({
            "iat": now,
            "exp": now + (expires_delta if expires_delta is not None else self.expiration),
            "jti": str(uuid.uuid4()),
            "iss": self.issuer,
        })
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify_token(self, token: str) -> TokenClaims:
        """
        Verify signature, expiry, issuer and required claims.

        Raises:
            TokenVerificationError: for every failure; never returns partial claims.
        """
        if not token or not isinstance(token, str):
            raise TokenVerificationError(TokenError.MALFORMED, "Empty token")

        try:
            header = jwt.get_unverified_header(token)
        except DecodeError as e:
            raise TokenVerificationError(TokenError.MALFORMED, f"Unreadable header: {e}")

        # Prevent algorithm confusion ("none", RS/HS swaps)
        if header.get("alg") != self.algorithm:
            raise TokenVerificationError(TokenError.INVALID_SIGNATURE, f"Unexpected algorithm {header.get('alg')!r}")

        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": ["exp", "iat", "iss"]},
            )
        except ExpiredSignatureError:
            raise TokenVerificationError(TokenError.EXPIRED, "Token has expired")
        except InvalidSignatureError:
            raise TokenVerificationError(TokenError.INVALID_SIGNATURE, "Signature verification failed")
        except InvalidIssuerError:
            raise TokenVerificationError(TokenError.INVALID_SIGNATURE, "Unexpected issuer")
        except MissingRequiredClaimError as e:
            raise TokenVerificationError(TokenError.MISSING_CLAIMS, str(e))
        except DecodeError as e:
            raise TokenVerificationError(TokenError.MALFORMED, str(e))
        except InvalidTokenError as e:
            raise TokenVerificationError(TokenError.INVALID_SIGNATURE, str(e))

        subject = payload.get("sub")
        email = payload.get("email")
        role = payload.get("role")
        if not subject or not email:
            raise TokenVerificationError(TokenError.MISSING_CLAIMS, "Token lacks subject or email")
        if role not in ROLES:
            raise TokenVerificationError(TokenError.MISSING_CLAIMS, "Token lacks a known role")

        return TokenClaims.from_payload(payload)
