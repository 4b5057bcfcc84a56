"""
action_engine/engine/executor.py

ActionExecutor - runs a handler under lease, timeout, retry/backoff and rollback.

Flow:
1. Take the lease for the (action, actor) key; contention returns at once
2. Run each attempt on its own handler thread, bounded by the attempt timeout
3. Transient failures (including timeouts) retry with exponential backoff
4. Handlers report applied sub-operations through HandlerContext.record_change
5. Terminal failure or exhausted attempts: compensate newest-first, release, fail
6. Success: release and return the handler output

A timed-out attempt cannot be interrupted. It is cancelled (record_change
raises from then on) and abandoned; no further attempt starts while it is
still running, and the lease is released only once it finishes (or expires).

Handlers must be idempotent across retries of the same invocation, or
de-duplicate on HandlerContext.attempt_token. The engine does not enforce it.
"""
from concurrent.futures import Future, TimeoutError as FutureTimeoutError, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, TYPE_CHECKING
import asyncio
import inspect
import logging
import random
import threading
import uuid

from action_engine.ai.actions import Action
from action_engine.ai.context import HandlerContext, InvocationContext, RawResponse
from action_engine.ai.result import ExecutionResult
from action_engine.engine.guard import ConcurrencyGuard, guard_key
from action_engine.errors import (
    HandlerTimeout,
    LockContended,
    TerminalExecutionFailure,
    TransientExecutionFailure,
)
from action_engine.interfaces import Clock, MemoryLog, StateStore

if TYPE_CHECKING:
    from action_engine.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """
    Exponential backoff policy.

    Attributes:
        max_attempts: Attempt ceiling, first attempt included
        initial_delay: Delay after the first failed attempt (seconds)
        multiplier: Growth factor per attempt
        max_delay: Upper bound for any single delay
        jitter: Randomize each delay within [delay / 2, delay]
    """

    max_attempts: int = 3
    initial_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 10.0
    jitter: bool = False

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    def delay_for(self, attempt: int) -> float:
        """Delay after zero-based attempt `attempt` failed."""
        delay = min(self.initial_delay * (self.multiplier ** attempt), self.max_delay)
        if self.jitter:
            delay = random.uniform(delay / 2, delay)
        return delay


@dataclass
class ExecutorConfig:
    """
    Executor settings.

    The lease must outlive a handler attempt, otherwise a slow attempt could
    lose its lock and run concurrently with the next holder.

    Attributes:
        timeout_seconds: Per-attempt budget, counted from handler start
        lease_seconds: Lock lease, renewed before each retry
        cancel_grace_seconds: How long a retry waits for a timed-out attempt
            to wind down before giving up on retrying
        retry: Backoff policy
    """

    timeout_seconds: float = 30.0
    lease_seconds: float = 45.0
    cancel_grace_seconds: float = 1.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self):
        if self.timeout_seconds is None or self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be a positive number, got {self.timeout_seconds}")
        if self.cancel_grace_seconds < 0:
            raise ValueError(f"cancel_grace_seconds must not be negative, got {self.cancel_grace_seconds}")
        if self.lease_seconds <= self.timeout_seconds:
            raise ValueError(
                f"lease_seconds ({self.lease_seconds}) must exceed timeout_seconds ({self.timeout_seconds})"
            )

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ExecutorConfig":
        return cls(
            timeout_seconds=settings.HANDLER_TIMEOUT_SECONDS,
            lease_seconds=settings.LOCK_LEASE_SECONDS,
            cancel_grace_seconds=settings.HANDLER_CANCEL_GRACE_SECONDS,
            retry=RetryPolicy(
                max_attempts=settings.MAX_ATTEMPTS,
                initial_delay=settings.BACKOFF_INITIAL_DELAY,
                multiplier=settings.BACKOFF_MULTIPLIER,
                max_delay=settings.BACKOFF_MAX_DELAY,
                jitter=settings.BACKOFF_JITTER,
            ),
        )

    def lease_for(self, timeout: float) -> float:
        if timeout < self.lease_seconds:
            return self.lease_seconds
        return timeout * 1.5


class _Attempt:
    """One handler attempt on a dedicated thread, completing a Future."""

    def __init__(self, target: Callable[[], Any], context: HandlerContext):
        self.context = context
        self.future: Future = Future()
        self.started = threading.Event()
        self._target = target
        self._thread = threading.Thread(
            target=self._run,
            name=f"action-handler-{context.action_name}-{context.attempt}",
            daemon=True,
        )

    def start(self) -> "_Attempt":
        self._thread.start()
        self.started.wait()
        return self

    def _run(self) -> None:
        self.future.set_running_or_notify_cancel()
        self.started.set()
        try:
            result = self._target()
        except BaseException as e:
            self.future.set_exception(e)
        else:
            self.future.set_result(result)


class ActionExecutor:
    """
    Runs one action invocation to completion.

    Example:
        ```python
        executor = ActionExecutor(guard, ExecutorConfig(timeout_seconds=5, lease_seconds=10))
        result = executor.execute(action, RawResponse(action="take_order"), state)
        if not result.success:
            ...
        ```
    """

    def __init__(
        self,
        guard: Optional[ConcurrencyGuard] = None,
        config: Optional[ExecutorConfig] = None,
        clock: Optional[Clock] = None,
        state_store: Optional[StateStore] = None,
        memory_log: Optional[MemoryLog] = None,
    ):
        self.guard = guard or ConcurrencyGuard(clock=clock)
        self.config = config or ExecutorConfig()
        self.clock = clock or self.guard.clock
        self.state_store = state_store
        self.memory_log = memory_log
        self._in_flight: Dict[str, HandlerContext] = {}
        self._in_flight_lock = threading.Lock()

    def shutdown(self) -> None:
        """Cancel every attempt still running; their threads are not joined."""
        with self._in_flight_lock:
            contexts = list(self._in_flight.values())
        for context in contexts:
            context.cancel()
        if contexts:
            logger.info(f"Cancelled {len(contexts)} in-flight handler attempts")

    def in_flight(self) -> int:
        with self._in_flight_lock:
            return len(self._in_flight)

    def execute(
        self,
        action: Action,
        message: RawResponse,
        state: Optional[Mapping[str, Any]] = None,
        invocation: Optional[InvocationContext] = None,
        params: Any = None,
    ) -> ExecutionResult:
        """
        Execute an action's handler.

        Args:
            action: Resolved action
            message: Candidate that triggered it
            state: Conversation working state, handed to the handler as-is
            invocation: Invocation to record attempts and changes on
            params: Parameters parsed by the validator stage

        Returns:
            ExecutionResult; never raises for handler failures
        """
        if invocation is None:
            invocation = InvocationContext(index=0, actor_id="anonymous", raw_token=action.name, message=message)
            invocation.resolved_action = action
        if state is None:
            state = {}

        key = invocation.lock_key or guard_key(action, invocation.actor_id)
        invocation.lock_key = key
        timeout = action.timeout_seconds if action.timeout_seconds is not None else self.config.timeout_seconds
        lease = self.config.lease_for(timeout)

        try:
            token = self.guard.lock(key, lease, action.name)
        except LockContended as e:
            return ExecutionResult.lock_contended(e.message)

        abandoned: Optional[Future] = None
        try:
            result, abandoned = self._run_attempts(
                action, message, state, invocation, params, key, token, timeout, lease
            )
        finally:
            if abandoned is not None and not abandoned.done():
                logger.warning(
                    f"Abandoned attempt of '{action.name}' still running; '{key}' stays locked until it ends"
                )
                abandoned.add_done_callback(lambda _future: self.guard.release(key, token))
            else:
                self.guard.release(key, token)
        return result

    def _run_attempts(
        self,
        action: Action,
        message: RawResponse,
        state: Mapping[str, Any],
        invocation: InvocationContext,
        params: Any,
        key: str,
        token: str,
        timeout: float,
        lease: float,
    ) -> Tuple[ExecutionResult, Optional[Future]]:
        max_attempts = action.max_attempts if action.max_attempts is not None else self.config.retry.max_attempts
        last_error: Optional[Exception] = None
        handler_context: Optional[HandlerContext] = None
        abandoned: Optional[Future] = None
        retries_stopped = False

        for attempt in range(max_attempts):
            if attempt:
                if abandoned is not None:
                    if not self._settle(abandoned):
                        logger.warning(f"Attempt {attempt} of '{action.name}' ignored cancellation; not retrying")
                        retries_stopped = True
                        break
                    abandoned = None
                if not self.guard.renew(key, token, lease):
                    last_error = TerminalExecutionFailure(f"lease for '{key}' lost before retry", action.name)
                    break

            invocation.attempts = attempt + 1
            handler_context = HandlerContext(
                action_name=action.name,
                actor_id=invocation.actor_id,
                attempt=attempt + 1,
                attempt_token=uuid.uuid4().hex,
                invocation=invocation,
                params=params,
                state_store=self.state_store,
                memory_log=self.memory_log,
            )

            future = self._start_attempt(action, message, state, handler_context)
            try:
                data = self._await_attempt(action, future, handler_context, timeout)
            except TransientExecutionFailure as e:
                last_error = e
                if not future.done():
                    abandoned = future
                logger.warning(
                    f"Transient failure in '{action.name}' (attempt {attempt + 1}/{max_attempts}): {e.message}"
                )
                if attempt + 1 < max_attempts:
                    self.clock.sleep(self.config.retry.delay_for(attempt))
                continue
            except TerminalExecutionFailure as e:
                last_error = e
                break
            except Exception as e:
                # Unclassified handler errors are not retried
                last_error = TerminalExecutionFailure(str(e) or type(e).__name__, action.name, cause=e)
                break

            logger.info(f"Action '{action.name}' succeeded on attempt {attempt + 1}")
            return ExecutionResult.ok(data, attempts=attempt + 1), None

        if retries_stopped:
            reason = f"{last_error.message}; previous attempt still running, retries stopped"
        elif isinstance(last_error, TransientExecutionFailure):
            reason = f"attempts exhausted ({invocation.attempts}/{max_attempts}): {last_error.message}"
        else:
            reason = getattr(last_error, "message", None) or str(last_error)

        if abandoned is not None and not retries_stopped and self._settle(abandoned):
            abandoned = None

        rolled_back = self._compensate(action, invocation, handler_context)
        result = ExecutionResult.fail(
            reason,
            error_type=type(last_error).__name__,
            attempts=invocation.attempts,
            rolled_back=rolled_back,
        )
        return result, abandoned

    def _start_attempt(
        self,
        action: Action,
        message: RawResponse,
        state: Mapping[str, Any],
        context: HandlerContext,
    ) -> Future:
        def target() -> Any:
            try:
                return self._invoke(action, message, state, context)
            finally:
                with self._in_flight_lock:
                    self._in_flight.pop(context.attempt_token, None)

        with self._in_flight_lock:
            self._in_flight[context.attempt_token] = context
        return _Attempt(target, context).start().future

    def _await_attempt(self, action: Action, future: Future, context: HandlerContext, timeout: float) -> Any:
        # The clock starts once the handler thread is running
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            context.cancel()
            raise HandlerTimeout(f"handler exceeded {timeout}s timeout", action.name)

    def _settle(self, future: Future) -> bool:
        """Give a cancelled attempt the grace period to finish; True if it did."""
        done, _ = wait([future], timeout=self.config.cancel_grace_seconds)
        return bool(done)

    @staticmethod
    def _invoke(action: Action, message: RawResponse, state: Mapping[str, Any], context: HandlerContext) -> Any:
        result = action.handler(message, state, context)
        if inspect.isawaitable(result):
            result = asyncio.run(_await(result))
        return result

    def _compensate(
        self,
        action: Action,
        invocation: InvocationContext,
        context: Optional[HandlerContext],
    ) -> bool:
        """
        Undo applied changes, newest first.

        Uses the action's rollback when present, otherwise the undo callables
        recorded with each change. Returns True only if compensation ran and
        completed.
        """
        changes = invocation.snapshot_changes()
        if not changes:
            return False

        try:
            if action.rollback is not None:
                action.rollback(changes, context)
            elif any(change.undo is not None for change in changes):
                for change in changes:
                    if change.undo is not None:
                        change.undo()
            else:
                logger.warning(f"Action '{action.name}' applied {len(changes)} changes but has no rollback")
                return False
        except Exception as e:
            logger.error(f"Rollback failed for '{action.name}': {e}", exc_info=True)
            return False

        logger.info(f"Rolled back {len(changes)} changes for '{action.name}'")
        return True


async def _await(awaitable: Any) -> Any:
    return await awaitable


__all__ = [
    "RetryPolicy",
    "ExecutorConfig",
    "ActionExecutor",
]
