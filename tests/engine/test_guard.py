"""
tests/engine/test_guard.py

Tests for the rate limiter, the lease lock and ConcurrencyGuard.
"""
import threading

import pytest

from action_engine.ai.actions import Action
from action_engine.engine.clock import ManualClock
from action_engine.engine.guard import LeaseLock, RateLimiter, guard_key
from action_engine.errors import LockContended, RateLimited


def noop(message, state, context):
    return None


class TestRateLimiter:
    """Fixed-window rate limiting"""

    def test_limit_within_window(self, clock):
        limiter = RateLimiter(clock, limit=5, window_seconds=60)

        admitted = [limiter.try_acquire("k") for _ in range(6)]

        assert admitted == [True] * 5 + [False]

    def test_rejected_until_window_rolls_over(self, clock):
        limiter = RateLimiter(clock, limit=5, window_seconds=60)
        for _ in range(5):
            assert limiter.try_acquire("k")

        clock.advance(59)
        assert not limiter.try_acquire("k")

        clock.advance(1)
        assert limiter.try_acquire("k")
        assert limiter.remaining("k") == 4

    def test_keys_are_independent(self, clock):
        limiter = RateLimiter(clock, limit=1, window_seconds=60)

        assert limiter.try_acquire("a:user1")
        assert limiter.try_acquire("a:user2")
        assert not limiter.try_acquire("a:user1")

    def test_zero_limit_disables(self, clock):
        limiter = RateLimiter(clock, limit=0, window_seconds=60)
        assert all(limiter.try_acquire("k") for _ in range(100))
        assert limiter.remaining("k") is None

    def test_per_call_override(self, clock):
        limiter = RateLimiter(clock, limit=5, window_seconds=60)

        assert limiter.try_acquire("k", limit=1)
        assert not limiter.try_acquire("k", limit=1)

    def test_remaining_and_reset(self, clock):
        limiter = RateLimiter(clock, limit=3, window_seconds=10)
        assert limiter.remaining("k") == 3
        limiter.try_acquire("k")
        assert limiter.remaining("k") == 2

        limiter.reset("k")
        assert limiter.remaining("k") == 3

    def test_remaining_honors_limit_override(self, clock):
        limiter = RateLimiter(clock, limit=5, window_seconds=60)
        limiter.try_acquire("k", limit=2)

        assert limiter.remaining("k", limit=2) == 1
        assert limiter.remaining("k", limit=0) is None

    def test_reset_all_keys(self, clock):
        limiter = RateLimiter(clock, limit=1, window_seconds=60)
        limiter.try_acquire("a")
        limiter.try_acquire("b")

        limiter.reset()

        assert limiter.snapshot() == []
        assert limiter.try_acquire("a")

    def test_elapsed_windows_are_swept(self, clock):
        limiter = RateLimiter(clock, limit=5, window_seconds=60)
        limiter.try_acquire("a:user1")

        clock.advance(60)
        limiter.try_acquire("a:user2")

        assert [w["key"] for w in limiter.snapshot()] == ["a:user2"]

    def test_key_mutexes_are_dropped_when_idle(self, clock):
        limiter = RateLimiter(clock, limit=5, window_seconds=60)
        for i in range(10):
            limiter.try_acquire(f"k{i}")
            limiter.remaining(f"k{i}")

        assert len(limiter._mutexes) == 0

    def test_concurrent_admissions_respect_limit(self):
        limiter = RateLimiter(ManualClock(), limit=5, window_seconds=60)
        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(20)

        def worker():
            barrier.wait()
            admitted = limiter.try_acquire("k")
            with lock:
                results.append(admitted)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 5


class TestLeaseLock:
    """Fail-fast lock with mandatory lease"""

    def test_second_acquire_fails_fast(self, clock):
        locks = LeaseLock(clock, lease_seconds=45)

        token = locks.acquire("k")

        assert token is not None
        assert locks.acquire("k") is None
        assert locks.is_held("k")

    def test_release_frees_key(self, clock):
        locks = LeaseLock(clock, lease_seconds=45)
        token = locks.acquire("k")

        assert locks.release("k", token)
        assert not locks.is_held("k")
        assert locks.acquire("k") is not None

    def test_expired_lease_can_be_taken_over(self, clock):
        locks = LeaseLock(clock, lease_seconds=45)
        stale = locks.acquire("k")

        clock.advance(45)
        fresh = locks.acquire("k")

        assert fresh is not None and fresh != stale
        # The stale holder cannot release or renew the new lease
        assert not locks.release("k", stale)
        assert not locks.renew("k", stale)
        assert locks.is_held("k")

    def test_renew_extends_lease(self, clock):
        locks = LeaseLock(clock, lease_seconds=10)
        token = locks.acquire("k")

        clock.advance(8)
        assert locks.renew("k", token)
        clock.advance(8)
        assert locks.is_held("k")

    def test_renew_after_expiry_fails(self, clock):
        locks = LeaseLock(clock, lease_seconds=10)
        token = locks.acquire("k")

        clock.advance(10)
        assert not locks.renew("k", token)

    def test_keys_are_independent(self, clock):
        locks = LeaseLock(clock)
        assert locks.acquire("a:1") is not None
        assert locks.acquire("a:2") is not None

    def test_expired_entries_are_swept(self, clock):
        locks = LeaseLock(clock, lease_seconds=45)
        stale = locks.acquire("a:1")

        clock.advance(45)
        locks.acquire("a:2")

        assert [entry["key"] for entry in locks.snapshot()] == ["a:2"]
        assert not locks.release("a:1", stale)
        assert len(locks._mutexes) == 0

    def test_concurrent_acquire_single_winner(self):
        locks = LeaseLock(ManualClock(), lease_seconds=45)
        tokens = []
        lock = threading.Lock()
        barrier = threading.Barrier(16)

        def worker():
            barrier.wait()
            token = locks.acquire("k")
            with lock:
                tokens.append(token)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len([t for t in tokens if t is not None]) == 1


class TestConcurrencyGuard:
    """Guard facade keyed by (action, actor)"""

    def test_guard_key(self):
        action = Action(name="Take_Order", handler=noop)
        assert guard_key(action, "user-1") == "takeorder:user-1"

    def test_admit_raises_when_exhausted(self, guard):
        action = Action(name="take_order", handler=noop)
        for _ in range(5):
            assert guard.admit(action, "u1") == "takeorder:u1"

        with pytest.raises(RateLimited) as exc_info:
            guard.admit(action, "u1")

        assert exc_info.value.key == "takeorder:u1"
        assert exc_info.value.action_name == "take_order"

    def test_action_rate_override(self, guard):
        action = Action(name="chatty", handler=noop, rate_limit=0)
        for _ in range(50):
            guard.admit(action, "u1")

    def test_remaining_uses_action_limit(self, guard):
        action = Action(name="take_order", handler=noop, rate_limit=2)
        guard.admit(action, "u1")
        guard.admit(action, "u1")

        assert guard.remaining(action, "u1") == 0
        assert guard.remaining(action, "u2") == 2
        assert guard.remaining(Action(name="chatty", handler=noop, rate_limit=0), "u1") is None

    def test_lock_raises_when_held(self, guard):
        token = guard.lock("k")

        with pytest.raises(LockContended):
            guard.lock("k", action_name="take_order")

        assert guard.release("k", token)

    def test_statistics(self, guard):
        action = Action(name="take_order", handler=noop)
        guard.admit(action, "u1")
        guard.lock("takeorder:u1")

        stats = guard.statistics()

        assert stats["rate_windows"][0]["key"] == "takeorder:u1"
        assert stats["rate_windows"][0]["count"] == 1
        assert stats["locks"][0]["key"] == "takeorder:u1"
        assert stats["locks"][0]["expired"] is False
