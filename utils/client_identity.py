"""
Client identity derivation for windowed counters.
"""
from typing import Iterable, Optional, Tuple

from starlette.types import Scope


def _header(headers: Iterable[Tuple[bytes, bytes]], name: bytes) -> Optional[str]:
    for key, value in headers:
        if key.lower() == name:
            return value.decode("latin-1")
    return None


def client_ip_from_scope(scope: Scope, trust_forwarded_for: bool = False) -> str:
    """
    Network address of the caller.

    ``X-Forwarded-For`` is honoured only when the app runs behind a trusted
    proxy; otherwise a client could pick its own identity.
    """
    if trust_forwarded_for:
        forwarded = _header(scope.get("headers") or [], b"x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first

    client = scope.get("client")
    if client:
        return client[0]
    return "unknown"


def brute_force_key(client_ip: str, path: str) -> str:
    """Brute-force counters are per client and per route."""
    return f"{client_ip}:{path}"
