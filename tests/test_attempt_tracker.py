"""
AttemptTracker tests: fixed windows, resets, sweeping and the Redis store.
"""
import asyncio
import threading
from typing import Dict

import pytest

from services.attempt_tracker import AttemptTracker, InMemoryAttemptStore
from services.redis_attempt_store import RedisAttemptStore
from conftest import FakeClock


@pytest.fixture
def tracker(clock):
    return AttemptTracker("BruteForce", max_attempts=5, window_seconds=900, clock=clock)


class TestCheck:
    def test_unknown_key_has_full_budget(self, tracker):
        status = tracker.check("10.1.1.1:/api/auth/login")
        assert status.allowed
        assert status.remaining_before_block == 5

    def test_blocks_at_max_attempts(self, tracker, clock):
        key = "10.1.1.1:/api/auth/login"
        for expected_remaining in (4, 3, 2, 1):
            tracker.record_failure(key)
            assert tracker.check(key).remaining_before_block == expected_remaining

        tracker.record_failure(key)
        status = tracker.check(key)
        assert not status.allowed
        assert status.remaining_before_block == 0
        assert 0 < status.retry_after <= 900

    def test_keys_are_independent(self, tracker):
        for _ in range(5):
            tracker.record_failure("a")
        assert not tracker.check("a").allowed
        assert tracker.check("b").allowed


class TestWindow:
    def test_window_is_anchored_to_first_failure(self, tracker, clock):
        key = "ip:/login"
        tracker.record_failure(key)
        clock.advance(800)
        for _ in range(4):
            tracker.record_failure(key)
        assert not tracker.check(key).allowed

        # 901s after the first failure the window is over, even though the
        # latest failures are recent.
        clock.advance(101)
        assert tracker.check(key).allowed
        assert tracker.store.get(key) is None

    def test_failure_after_expiry_starts_new_window(self, tracker, clock):
        key = "ip:/login"
        for _ in range(5):
            tracker.record_failure(key)
        clock.advance(901)
        record = tracker.record_failure(key)
        assert record.count == 1
        assert record.window_start == clock.now

    def test_success_resets(self, tracker):
        key = "ip:/login"
        for _ in range(4):
            tracker.record_failure(key)
        tracker.record_success(key)
        assert tracker.check(key).remaining_before_block == 5


class TestSweep:
    def test_evicts_records_idle_past_twice_the_window(self, tracker, clock):
        tracker.record_failure("stale")
        clock.advance(1000)
        tracker.record_failure("fresh")
        clock.advance(801)

        assert tracker.sweep() == 1
        assert tracker.store.keys() == ["fresh"]

    def test_sweep_with_explicit_time(self, tracker, clock):
        tracker.record_failure("k")
        assert tracker.sweep(now=clock.now + 1800) == 0
        assert tracker.sweep(now=clock.now + 1801) == 1
        assert len(tracker.store) == 0


def test_default_store_is_in_memory():
    tracker = AttemptTracker("WSConnect", max_attempts=10, window_seconds=3600)
    assert isinstance(tracker.store, InMemoryAttemptStore)
    assert not tracker.blocking


class TestConcurrency:
    def test_parallel_failures_are_all_counted(self, clock):
        tracker = AttemptTracker("BruteForce", max_attempts=1000, window_seconds=900, clock=clock)
        key = "10.9.9.9:/api/auth/login"
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            for _ in range(50):
                tracker.record_failure(key)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert tracker.store.get(key).count == 400

    def test_expiry_check_never_drops_a_new_window(self, tracker, clock):
        key = "10.9.9.9:/api/auth/login"
        for _ in range(5):
            tracker.record_failure(key)
        clock.advance(901)
        barrier = threading.Barrier(2)

        def checker():
            barrier.wait()
            for _ in range(200):
                tracker.check(key)

        def failer():
            barrier.wait()
            for _ in range(4):
                tracker.record_failure(key)

        threads = [threading.Thread(target=checker), threading.Thread(target=failer)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert tracker.store.get(key).count == 4
        assert tracker.check(key).remaining_before_block == 1


class FakeRedisPipeline:
    def __init__(self, server: "FakeRedis"):
        self.server = server

    def hgetall(self, name):
        return dict(self.server.hashes.get(name, {}))

    def multi(self):
        self.server.multi_calls += 1

    def hset(self, name, mapping):
        self.server.hashes[name] = {k: str(v) for k, v in mapping.items()}

    def expire(self, name, seconds):
        self.server.ttls[name] = seconds

    def delete(self, name):
        self.server.hashes.pop(name, None)


class FakeRedis:
    """Just enough of redis.Redis for the attempt store."""

    def __init__(self):
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.ttls: Dict[str, int] = {}
        self.multi_calls = 0
        self.watched = []

    def hgetall(self, name):
        return dict(self.hashes.get(name, {}))

    def delete(self, name):
        self.hashes.pop(name, None)

    def transaction(self, func, *watches, value_from_callable=False):
        self.watched.extend(watches)
        result = func(FakeRedisPipeline(self))
        return result if value_from_callable else []


class TestRedisAttemptStore:
    @pytest.fixture
    def server(self):
        return FakeRedis()

    @pytest.fixture
    def redis_tracker(self, server, clock):
        return AttemptTracker(
            "BruteForce",
            max_attempts=3,
            window_seconds=600,
            store=RedisAttemptStore(server, prefix="brute_force"),
            clock=clock,
        )

    def test_increment_uses_watched_transaction(self, redis_tracker, server):
        record = redis_tracker.record_failure("1.2.3.4:/api/auth/login")
        assert record.count == 1
        assert server.watched == ["brute_force:1.2.3.4:/api/auth/login"]
        assert server.multi_calls == 1
        assert server.ttls["brute_force:1.2.3.4:/api/auth/login"] == 1200

    def test_same_contract_as_memory_store(self, redis_tracker, clock):
        key = "1.2.3.4:/api/auth/login"
        for _ in range(3):
            redis_tracker.record_failure(key)
        assert not redis_tracker.check(key).allowed

        clock.advance(601)
        assert redis_tracker.check(key).allowed
        assert redis_tracker.store.get(key) is None

    def test_success_deletes_hash(self, redis_tracker, server):
        redis_tracker.record_failure("k")
        redis_tracker.record_success("k")
        assert server.hashes == {}

    def test_sweep_relies_on_ttl(self, redis_tracker, clock):
        redis_tracker.record_failure("k")
        assert redis_tracker.sweep(now=clock.now + 10_000) == 0

    def test_network_store_is_offloaded(self, redis_tracker, server):
        assert redis_tracker.blocking

        async def scenario():
            await redis_tracker.record_failure_async("k")
            return await redis_tracker.check_async("k")

        status = asyncio.run(scenario())
        assert status.remaining_before_block == 2
        assert "brute_force:k" in server.hashes


def test_fake_clock_advances():
    clock = FakeClock(start=10)
    clock.advance(5)
    assert clock() == 15
