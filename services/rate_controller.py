"""
Fixed-window request counters with soft (delay) and hard (reject) caps.

Two instances run in the app: the general API limiter (soft 50 / hard 100
per 15 minutes, trusted networks exempt) and the auth limiter (hard 5 per
15 minutes, successful authentications refunded, no exemptions).
"""
import time
import logging
import ipaddress
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)


class RateAction(Enum):
    ALLOW = "allow"
    DELAY = "delay"
    REJECT = "reject"


@dataclass(frozen=True)
class RateDecision:
    action: RateAction
    limit: int
    remaining: int
    delay_ms: int = 0
    retry_after: int = 0
    exempt: bool = False


@dataclass
class RateWindow:
    key: str
    count: int
    window_start: float


def parse_networks(networks: Iterable[str]) -> List[Union[ipaddress.IPv4Network, ipaddress.IPv6Network]]:
    parsed = []
    for entry in networks:
        try:
            parsed.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            logger.warning(f"⚠️ [RateLimit] Ignoring invalid trusted network: {entry}")
    return parsed


class RateController:
    """
    admit(identity) -> RateDecision

    Args:
        name: label for logs ("api", "auth").
        hard_limit: requests per window; the next one is rejected.
        window_seconds: fixed window length, anchored to the first request.
        soft_limit: requests per window before each further one is delayed.
        delay_ms: added latency past the soft limit.
        exempt_networks: client networks that bypass this controller.
        clock: time source in seconds.
    """

    def __init__(
        self,
        name: str,
        hard_limit: int,
        window_seconds: int,
        soft_limit: Optional[int] = None,
        delay_ms: int = 0,
        exempt_networks: Iterable[str] = (),
        clock: Callable[[], float] = time.time
    ):
        self.name = name
        self.hard_limit = hard_limit
        self.window_seconds = window_seconds
        self.soft_limit = soft_limit
        self.delay_ms = delay_ms
        self.exempt_networks = parse_networks(exempt_networks)
        self.clock = clock
        self._windows: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()

    def is_exempt(self, address: str) -> bool:
        if not self.exempt_networks or not address:
            return False
        try:
            ip = ipaddress.ip_address(address)
        except ValueError:
            return False
        return any(ip in network for network in self.exempt_networks)

    def admit(self, identity: str, address: Optional[str] = None) -> RateDecision:
        """Count one request for ``identity`` and decide its fate."""
        if self.is_exempt(address if address is not None else identity):
            return RateDecision(RateAction.ALLOW, self.hard_limit, self.hard_limit, exempt=True)

        now = self.clock()
        with self._lock:
            window = self._windows.get(identity)
            if window is None or now - window.window_start >= self.window_seconds:
                window = RateWindow(key=identity, count=0, window_start=now)
                self._windows[identity] = window
            window.count += 1
            count = window.count
            reset_at = window.window_start + self.window_seconds

        remaining = max(0, self.hard_limit - count)

        if count > self.hard_limit:
            retry_after = max(1, int(reset_at - now))
            logger.warning(f"[RateLimit:{self.name}] {identity} exceeded {self.hard_limit} requests")
            return RateDecision(RateAction.REJECT, self.hard_limit, 0, retry_after=retry_after)

        if self.soft_limit is not None and count > self.soft_limit and self.delay_ms > 0:
            return RateDecision(RateAction.DELAY, self.hard_limit, remaining, delay_ms=self.delay_ms)

        return RateDecision(RateAction.ALLOW, self.hard_limit, remaining)

    def refund(self, identity: str) -> None:
        """Give back one admitted request (successful authentication)."""
        with self._lock:
            window = self._windows.get(identity)
            if window is not None and window.count > 0:
                window.count -= 1

    def count(self, identity: str) -> int:
        with self._lock:
            window = self._windows.get(identity)
            return window.count if window else 0

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop windows that have already ended."""
        now = self.clock() if now is None else now
        with self._lock:
            stale = [k for k, w in self._windows.items() if now - w.window_start >= self.window_seconds]
            for key in stale:
                del self._windows[key]
        if stale:
            logger.info(f"🧹 [RateLimit:{self.name}] Swept {len(stale)} expired windows")
        return len(stale)
