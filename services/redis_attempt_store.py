"""
Redis-backed attempt store for multi-process deployments.
Same contract as the in-memory table; records expire through key TTLs.
"""
import logging
from typing import Optional

import redis

from services.attempt_tracker import AttemptRecord

logger = logging.getLogger(__name__)


class RedisAttemptStore:
    """Each record is a hash ``{count, window_start, last_activity}`` with a TTL of 2x window."""
    blocking = True

    def __init__(self, client: "redis.Redis", prefix: str = "attempts"):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str, timeout: int = 5) -> "RedisAttemptStore":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        logger.info(f"✅ [AttemptStore] Using Redis backend for '{prefix}'")
        return cls(client, prefix)

    def _name(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    @staticmethod
    def _to_record(key: str, data: dict) -> AttemptRecord:
        return AttemptRecord(
            key=key,
            count=int(data["count"]),
            window_start=float(data["window_start"]),
            last_activity=float(data["last_activity"]),
        )

    def get(self, key: str) -> Optional[AttemptRecord]:
        data = self.client.hgetall(self._name(key))
        if not data:
            return None
        return self._to_record(key, data)

    def get_current(self, key: str, now: float, window_seconds: int) -> Optional[AttemptRecord]:
        name = self._name(key)

        def _apply(pipe) -> Optional[AttemptRecord]:
            data = pipe.hgetall(name)
            if not data:
                return None
            record = self._to_record(key, data)
            if now - record.window_start > window_seconds:
                pipe.multi()
                pipe.delete(name)
                return None
            return record

        return self.client.transaction(_apply, name, value_from_callable=True)

    def increment(self, key: str, now: float, window_seconds: int) -> AttemptRecord:
        name = self._name(key)

        def _apply(pipe) -> AttemptRecord:
            data = pipe.hgetall(name)
            if not data or now - float(data["window_start"]) > window_seconds:
                count, window_start = 1, now
            else:
                count, window_start = int(data["count"]) + 1, float(data["window_start"])

            pipe.multi()
            pipe.hset(name, mapping={
                "count": count,
                "window_start": window_start,
                "last_activity": now,
            })
            pipe.expire(name, int(2 * window_seconds))
            return AttemptRecord(key=key, count=count, window_start=window_start, last_activity=now)

        return self.client.transaction(_apply, name, value_from_callable=True)

    def delete(self, key: str) -> None:
        self.client.delete(self._name(key))

    def evict_idle(self, cutoff: float) -> int:
        # Key TTLs evict idle records server-side.
        return 0
