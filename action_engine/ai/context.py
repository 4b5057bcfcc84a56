"""
action_engine/ai/context.py

Per-candidate invocation state and the context handed to action handlers.

InvocationContext is created by the dispatch loop for one candidate and
dropped with the batch; it is never persisted. HandlerContext is what a
handler sees for one attempt: the collaborators it may touch and the hook
for reporting compensable changes.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING
import threading

from pydantic import BaseModel, ConfigDict, Field

from action_engine.ai.result import (
    ExecutionResult,
    InvocationOutcome,
    InvocationState,
    ValidationResult,
)
from action_engine.errors import AttemptCancelled

if TYPE_CHECKING:
    from action_engine.ai.actions import Action
    from action_engine.interfaces import MemoryLog, StateStore


class RawResponse(BaseModel):
    """
    One LLM response candidate.

    `action` is free text and may be absent; everything else is content the
    engine passes through to validators and handlers untouched.
    """

    model_config = ConfigDict(extra="allow")

    action: Optional[str] = None
    text: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class AppliedChange:
    """A sub-operation a handler applied and may need compensating."""

    description: str
    data: Dict[str, Any] = field(default_factory=dict)
    undo: Optional[Callable[[], None]] = None
    attempt: int = 1


@dataclass
class InvocationContext:
    """
    One attempt to run an action for one response candidate.

    Attributes:
        index: Position of the candidate in its batch
        actor_id: Entity scoping locks and rate limits
        raw_token: The candidate's action field as received
        normalized_key: Canonical key derived from raw_token
        resolved_action: Registered action, None until resolved
        validation_result: Verdict of the validation gate
        lock_key / rate_limit_key: Guard keys derived from action and actor
        attempts: Handler attempts made so far
        applied_changes: Compensable operations, in application order
        outcome: Terminal outcome, None while in flight
        reason: Diagnostic for non-success outcomes
    """

    index: int
    actor_id: str
    raw_token: Optional[str] = None
    message: Optional[RawResponse] = None
    normalized_key: str = ""
    resolved_action: Optional["Action"] = None
    validation_result: Optional[ValidationResult] = None
    lock_key: Optional[str] = None
    rate_limit_key: Optional[str] = None
    attempts: int = 0
    applied_changes: List[AppliedChange] = field(default_factory=list)
    outcome: Optional[InvocationOutcome] = None
    reason: Optional[str] = None
    result: Optional[ExecutionResult] = None
    state: InvocationState = InvocationState.CREATED
    _changes_lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def action_name(self) -> Optional[str]:
        if self.resolved_action is not None:
            return self.resolved_action.name
        return self.raw_token

    @property
    def succeeded(self) -> bool:
        return self.outcome is InvocationOutcome.SUCCEEDED

    def snapshot_changes(self) -> List[AppliedChange]:
        """Applied changes, newest first, as of now."""
        with self._changes_lock:
            return list(reversed(self.applied_changes))

    def transition(self, state: InvocationState) -> None:
        if self.state is InvocationState.COMPLETED:
            raise RuntimeError(f"Invocation {self.index} already completed with {self.outcome}")
        self.state = state

    def finish(self, outcome: InvocationOutcome, reason: Optional[str] = None) -> None:
        self.outcome = outcome
        self.reason = reason
        self.state = InvocationState.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "actor_id": self.actor_id,
            "raw_token": self.raw_token,
            "normalized_key": self.normalized_key,
            "action": self.resolved_action.name if self.resolved_action else None,
            "validation": self.validation_result.to_dict() if self.validation_result else None,
            "attempts": self.attempts,
            "applied_changes": [c.description for c in self.applied_changes],
            "outcome": self.outcome.value if self.outcome else None,
            "reason": self.reason,
            "result": self.result.to_dict() if self.result else None,
        }


@dataclass
class HandlerContext:
    """
    Dependencies and bookkeeping for one handler attempt.

    Handlers report every sub-operation they apply through record_change();
    on terminal failure the engine hands these back, newest first, to the
    action's rollback.

    An attempt that timed out is cancelled: `cancelled` turns True and
    record_change raises AttemptCancelled. Long-running handlers should
    check `cancelled` (or wait on `cancel_event`) between steps.
    """

    action_name: str
    actor_id: str
    attempt: int
    attempt_token: str
    invocation: InvocationContext
    params: Any = None
    state_store: Optional["StateStore"] = None
    memory_log: Optional["MemoryLog"] = None
    cancel_event: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        # Taken under the changes lock so no record_change can land after it
        with self.invocation._changes_lock:
            self.cancel_event.set()

    def record_change(
        self,
        description: str,
        undo: Optional[Callable[[], None]] = None,
        **data: Any,
    ) -> AppliedChange:
        change = AppliedChange(description=description, data=data, undo=undo, attempt=self.attempt)
        with self.invocation._changes_lock:
            if self.cancel_event.is_set():
                raise AttemptCancelled(
                    f"attempt {self.attempt} was cancelled; '{description}' not recorded",
                    self.action_name,
                )
            self.invocation.applied_changes.append(change)
        return change

    @property
    def applied_changes(self) -> List[AppliedChange]:
        with self.invocation._changes_lock:
            return list(self.invocation.applied_changes)


__all__ = [
    "RawResponse",
    "AppliedChange",
    "InvocationContext",
    "HandlerContext",
]
