"""
action_engine/engine - execution engine

- clock: monotonic clocks (system and manual)
- guard: rate limiter and lease lock
- executor: timeout, retry/backoff, rollback
- dispatcher: batch dispatch loop
- runtime: ActionEngine facade

Usage:
    >>> from action_engine.engine import ActionEngine, ConcurrencyGuard, ManualClock
"""
from action_engine.engine.clock import ManualClock, SystemClock
from action_engine.engine.guard import (
    ConcurrencyGuard,
    LeaseLock,
    LockEntry,
    RateLimiter,
    RateWindow,
    guard_key,
)
from action_engine.engine.executor import ActionExecutor, ExecutorConfig, RetryPolicy
from action_engine.engine.dispatcher import ActionDispatcher, NO_ACTION_REASON, summarize
from action_engine.engine.runtime import ActionEngine

__all__ = [
    "ManualClock",
    "SystemClock",
    "ConcurrencyGuard",
    "LeaseLock",
    "LockEntry",
    "RateLimiter",
    "RateWindow",
    "guard_key",
    "ActionExecutor",
    "ExecutorConfig",
    "RetryPolicy",
    "ActionDispatcher",
    "NO_ACTION_REASON",
    "summarize",
    "ActionEngine",
]
