"""
action_engine/engine/guard.py

Concurrency guard - per-key rate limiting and lease-based mutual exclusion.

Both checks are keyed by (normalized action name, actor id). LockEntry and
RateWindow maps are the only runtime-mutable shared state in the engine;
each key has its own mutex, so work on unrelated keys never serializes.
"""
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional
import logging
import threading
import uuid

from action_engine.ai.actions import Action
from action_engine.ai.normalizer import normalize
from action_engine.engine.clock import SystemClock
from action_engine.errors import LockContended, RateLimited
from action_engine.interfaces import Clock

logger = logging.getLogger(__name__)


def guard_key(action: Action, actor_id: Any) -> str:
    """Key shared by the rate limiter and the lock for (action, actor)."""
    return f"{normalize(action.name)}:{actor_id}"


@dataclass
class LockEntry:
    """A held lease; expires at held_until regardless of the holder's liveness."""

    key: str
    token: str
    held_until: float

    def is_expired(self, now: float) -> bool:
        return now >= self.held_until


@dataclass
class RateWindow:
    """Fixed-window admission counter for one key."""

    key: str
    limit: int
    window_duration: float
    count: int = 0
    window_start: float = 0.0

    def is_elapsed(self, now: float) -> bool:
        return now >= self.window_start + self.window_duration

    def roll_over(self, now: float) -> bool:
        """Reset the window when it has elapsed; True if it rolled over."""
        if self.is_elapsed(now):
            self.count = 0
            self.window_start = now
            return True
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "count": self.count,
            "limit": self.limit,
            "window_start": self.window_start,
            "window_duration": self.window_duration,
        }


@dataclass
class _MutexSlot:
    lock: threading.Lock
    users: int = 0


class _KeyedMutexes:
    """
    Mutex per key, created on first use and dropped once no caller holds
    or waits on it. The map itself is guarded by a short-lived lock.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._slots: Dict[str, _MutexSlot] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = _MutexSlot(threading.Lock())
            slot.users += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._guard:
                slot.users -= 1
                if slot.users == 0:
                    del self._slots[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)


class RateLimiter:
    """
    Fixed-window rate limiter.

    Each admitted attempt increments the key's count; once count reaches the
    limit, further attempts are rejected until the window rolls over.
    A limit of 0 (or None) disables limiting for that call.

    Elapsed windows are swept at most once per window_seconds, so keys that
    go quiet do not accumulate.
    """

    def __init__(self, clock: Optional[Clock] = None, limit: int = 5, window_seconds: float = 60.0):
        self.clock = clock or SystemClock()
        self.limit = limit
        self.window_seconds = window_seconds
        self._windows: Dict[str, RateWindow] = {}
        self._mutexes = _KeyedMutexes()
        self._sweep_lock = threading.Lock()
        self._last_sweep = self.clock.now()

    def try_acquire(
        self,
        key: str,
        limit: Optional[int] = None,
        window_seconds: Optional[float] = None,
    ) -> bool:
        """Admit one attempt for key; False when the window is exhausted."""
        limit = self.limit if limit is None else limit
        window_seconds = self.window_seconds if window_seconds is None else window_seconds
        if not limit:
            return True

        self._maybe_sweep()
        with self._mutexes.hold(key):
            now = self.clock.now()
            window = self._windows.get(key)
            if window is None:
                window = RateWindow(key=key, limit=limit, window_duration=window_seconds, window_start=now)
                self._windows[key] = window
            else:
                window.limit = limit
                window.window_duration = window_seconds
                window.roll_over(now)

            if window.count >= window.limit:
                return False
            window.count += 1
            return True

    def remaining(self, key: str, limit: Optional[int] = None) -> Optional[int]:
        """Admissions left in the key's current window (None when unlimited)."""
        limit = self.limit if limit is None else limit
        if not limit:
            return None
        with self._mutexes.hold(key):
            window = self._windows.get(key)
            if window is None or window.is_elapsed(self.clock.now()):
                return limit
            return max(limit - window.count, 0)

    def reset(self, key: Optional[str] = None) -> None:
        keys = list(self._windows) if key is None else [key]
        for k in keys:
            with self._mutexes.hold(k):
                self._windows.pop(k, None)

    def _maybe_sweep(self) -> None:
        now = self.clock.now()
        with self._sweep_lock:
            if now - self._last_sweep < self.window_seconds:
                return
            self._last_sweep = now

        # Never called with a key mutex held
        swept = 0
        for key in list(self._windows):
            with self._mutexes.hold(key):
                window = self._windows.get(key)
                if window is not None and window.is_elapsed(now):
                    del self._windows[key]
                    swept += 1
        if swept:
            logger.debug(f"Swept {swept} elapsed rate windows")

    def snapshot(self) -> List[Dict[str, Any]]:
        return [window.to_dict() for _, window in sorted(list(self._windows.items()))]


class LeaseLock:
    """
    Non-blocking per-key lock with a mandatory lease.

    acquire() fails fast instead of queuing. An expired entry counts as free,
    so a hung or crashed holder cannot starve its key. Release and renewal
    are token-checked: a holder whose lease expired and was taken over cannot
    release or extend the new holder's lease.

    Expired entries are swept at most once per lease_seconds.
    """

    def __init__(self, clock: Optional[Clock] = None, lease_seconds: float = 45.0):
        self.clock = clock or SystemClock()
        self.lease_seconds = lease_seconds
        self._entries: Dict[str, LockEntry] = {}
        self._mutexes = _KeyedMutexes()
        self._sweep_lock = threading.Lock()
        self._last_sweep = self.clock.now()

    def acquire(self, key: str, lease_seconds: Optional[float] = None) -> Optional[str]:
        """Take the lease for key; returns the holder token, or None if held."""
        lease_seconds = self.lease_seconds if lease_seconds is None else lease_seconds
        self._maybe_sweep()
        with self._mutexes.hold(key):
            now = self.clock.now()
            entry = self._entries.get(key)
            if entry is not None and not entry.is_expired(now):
                return None
            if entry is not None:
                logger.warning(f"Lease for '{key}' expired at {entry.held_until:.3f}; taking over")

            token = uuid.uuid4().hex
            self._entries[key] = LockEntry(key=key, token=token, held_until=now + lease_seconds)
            return token

    def release(self, key: str, token: str) -> bool:
        """Release the lease if token still owns it."""
        with self._mutexes.hold(key):
            entry = self._entries.get(key)
            if entry is None or entry.token != token:
                return False
            del self._entries[key]
            return True

    def renew(self, key: str, token: str, lease_seconds: Optional[float] = None) -> bool:
        """Extend the lease from now; False if token no longer owns it or it expired."""
        lease_seconds = self.lease_seconds if lease_seconds is None else lease_seconds
        with self._mutexes.hold(key):
            now = self.clock.now()
            entry = self._entries.get(key)
            if entry is None or entry.token != token or entry.is_expired(now):
                return False
            entry.held_until = now + lease_seconds
            return True

    def is_held(self, key: str) -> bool:
        with self._mutexes.hold(key):
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self.clock.now())

    def _maybe_sweep(self) -> None:
        now = self.clock.now()
        with self._sweep_lock:
            if now - self._last_sweep < self.lease_seconds:
                return
            self._last_sweep = now

        for key in list(self._entries):
            with self._mutexes.hold(key):
                entry = self._entries.get(key)
                if entry is not None and entry.is_expired(now):
                    logger.warning(f"Lease for '{key}' expired at {entry.held_until:.3f} without release")
                    del self._entries[key]

    def snapshot(self) -> List[Dict[str, Any]]:
        now = self.clock.now()
        return [
            {"key": key, "held_until": entry.held_until, "expired": entry.is_expired(now)}
            for key, entry in sorted(list(self._entries.items()))
        ]


class ConcurrencyGuard:
    """
    Admission control for action execution.

    Example:
        >>> guard = ConcurrencyGuard(rate_limit=5, rate_window_seconds=60)
        >>> key = guard.admit(action, actor_id="user-1")   # raises RateLimited
        >>> token = guard.lock(key)                         # raises LockContended
        >>> guard.release(key, token)
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        rate_limit: int = 5,
        rate_window_seconds: float = 60.0,
        lease_seconds: float = 45.0,
    ):
        self.clock = clock or SystemClock()
        self.rate_limiter = RateLimiter(self.clock, limit=rate_limit, window_seconds=rate_window_seconds)
        self.locks = LeaseLock(self.clock, lease_seconds=lease_seconds)

    def admit(self, action: Action, actor_id: Any) -> str:
        """
        Count one attempt against the (action, actor) rate window.

        Returns:
            The rate-limit key

        Raises:
            RateLimited: If the window is exhausted
        """
        key = guard_key(action, actor_id)
        if not self.rate_limiter.try_acquire(key, action.rate_limit, action.rate_window_seconds):
            raise RateLimited(f"rate limit exceeded for '{key}'", action.name, key)
        return key

    def remaining(self, action: Action, actor_id: Any) -> Optional[int]:
        """Admissions left for (action, actor), honoring the action's own limit."""
        return self.rate_limiter.remaining(guard_key(action, actor_id), action.rate_limit)

    def lock(self, key: str, lease_seconds: Optional[float] = None, action_name: Optional[str] = None) -> str:
        """
        Take the execution lease for key.

        Raises:
            LockContended: If another execution holds an unexpired lease
        """
        token = self.locks.acquire(key, lease_seconds)
        if token is None:
            raise LockContended(f"lock held for '{key}'", action_name, key)
        return token

    def renew(self, key: str, token: str, lease_seconds: Optional[float] = None) -> bool:
        return self.locks.renew(key, token, lease_seconds)

    def release(self, key: str, token: str) -> bool:
        released = self.locks.release(key, token)
        if not released:
            logger.warning(f"Lease for '{key}' was no longer owned at release")
        return released

    def statistics(self) -> Dict[str, Any]:
        return {
            "locks": self.locks.snapshot(),
            "rate_windows": self.rate_limiter.snapshot(),
        }


__all__ = [
    "guard_key",
    "LockEntry",
    "RateWindow",
    "RateLimiter",
    "LeaseLock",
    "ConcurrencyGuard",
]
