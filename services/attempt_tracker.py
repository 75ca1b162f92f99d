"""
Keyed attempt counters with a fixed window and stale-record eviction.

One tracker instance guards one concern: brute-force protection on the auth
routes (15 minutes / 5 failures) or connection attempts on the real-time
channel (1 hour / 10 attempts). The window is anchored to the first failure;
later failures inside the window never extend it.
"""
import time
import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Protocol

from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class AttemptRecord:
    key: str
    count: int
    window_start: float
    last_activity: float


@dataclass(frozen=True)
class AttemptStatus:
    allowed: bool
    remaining_before_block: int
    retry_after: int = 0


class AttemptStore(Protocol):
    """Backend contract for a tracker table."""

    def get(self, key: str) -> Optional[AttemptRecord]: ...

    def increment(self, key: str, now: float, window_seconds: int) -> AttemptRecord: ...

    def get_current(self, key: str, now: float, window_seconds: int) -> Optional[AttemptRecord]: ...

    def delete(self, key: str) -> None: ...

    def evict_idle(self, cutoff: float) -> int: ...


class InMemoryAttemptStore:
    """Single-process store: a dict guarded by one mutex."""
    blocking = False

    def __init__(self):
        self._records: Dict[str, AttemptRecord] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[AttemptRecord]:
        with self._lock:
            return self._records.get(key)

    def increment(self, key: str, now: float, window_seconds: int) -> AttemptRecord:
        with self._lock:
            record = self._records.get(key)
            if record is None or now - record.window_start > window_seconds:
                record = AttemptRecord(key=key, count=1, window_start=now, last_activity=now)
            else:
                record = replace(record, count=record.count + 1, last_activity=now)
            self._records[key] = record
            return record

    def get_current(self, key: str, now: float, window_seconds: int) -> Optional[AttemptRecord]:
        """Live record for key; an expired one is dropped under the same lock."""
        with self._lock:
            record = self._records.get(key)
            if record is not None and now - record.window_start > window_seconds:
                del self._records[key]
                return None
            return record

    def delete(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    def evict_idle(self, cutoff: float) -> int:
        with self._lock:
            stale = [k for k, r in self._records.items() if r.last_activity < cutoff]
            for key in stale:
                del self._records[key]
            return len(stale)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class AttemptTracker:
    """
    check / record_failure / record_success / sweep over a keyed table.

    Args:
        name: label used in log lines ("brute_force", "ws_connect").
        max_attempts: failures allowed inside one window.
        window_seconds: window length, anchored to the first failure.
        store: table backend; in-memory unless a shared store is injected.
        clock: time source in seconds, injectable for tests.
    """

    def __init__(
        self,
        name: str,
        max_attempts: int,
        window_seconds: int,
        store: Optional[AttemptStore] = None,
        clock: Clock = time.time
    ):
        self.name = name
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.store = store if store is not None else InMemoryAttemptStore()
        self.clock = clock

    @property
    def blocking(self) -> bool:
        """True when the store does network I/O."""
        return getattr(self.store, "blocking", False)

    def check(self, key: str) -> AttemptStatus:
        now = self.clock()
        record = self.store.get_current(key, now, self.window_seconds)

        if record is None:
            return AttemptStatus(allowed=True, remaining_before_block=self.max_attempts)

        remaining = max(0, self.max_attempts - record.count)
        if record.count >= self.max_attempts:
            retry_after = max(1, int(record.window_start + self.window_seconds - now))
            return AttemptStatus(allowed=False, remaining_before_block=0, retry_after=retry_after)

        return AttemptStatus(allowed=True, remaining_before_block=remaining)

    def record_failure(self, key: str) -> AttemptRecord:
        record = self.store.increment(key, self.clock(), self.window_seconds)
        if record.count >= self.max_attempts:
            logger.warning(f"🚨 [{self.name}] {key} reached {record.count}/{self.max_attempts} attempts")
        return record

    def record_success(self, key: str) -> None:
        self.store.delete(key)

    def sweep(self, now: Optional[float] = None) -> int:
        """Evict records idle for longer than twice the window."""
        now = self.clock() if now is None else now
        evicted = self.store.evict_idle(now - 2 * self.window_seconds)
        if evicted:
            logger.info(f"🧹 [{self.name}] Swept {evicted} stale attempt records")
        return evicted

    async def _offload(self, func, *args):
        if self.blocking:
            return await run_in_threadpool(func, *args)
        return func(*args)

    async def check_async(self, key: str) -> AttemptStatus:
        return await self._offload(self.check, key)

    async def record_failure_async(self, key: str) -> AttemptRecord:
        return await self._offload(self.record_failure, key)

    async def record_success_async(self, key: str) -> None:
        await self._offload(self.record_success, key)
