"""
action_engine/engine/dispatcher.py

Dispatch loop - runs a batch of response candidates through
resolve -> dependency check -> validate -> rate limit -> execute.

Candidates are processed sequentially in input order and the returned
invocations keep that order. One candidate's failure never stops the rest:
every per-candidate error becomes a recorded outcome plus a log line.
"""
from collections import Counter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
import logging

from pydantic import ValidationError

from action_engine.ai.actions import Action, ActionRegistry
from action_engine.ai.context import InvocationContext, RawResponse
from action_engine.ai.normalizer import normalize
from action_engine.ai.resolver import ActionResolver
from action_engine.ai.result import (
    ExecutionResult,
    ExecutionStatus,
    InvocationOutcome,
    InvocationState,
)
from action_engine.ai.validation import ValidatorStage
from action_engine.engine.executor import ActionExecutor
from action_engine.engine.guard import ConcurrencyGuard, guard_key
from action_engine.errors import (
    ActionEngineError,
    LockContended,
    UnresolvedAction,
    ValidationFailure,
)
from action_engine.interfaces import EngineLogger, MemoryLog
from action_engine.logging_config import StdlibEngineLogger

logger = logging.getLogger(__name__)

NO_ACTION_REASON = "no action present"

Candidate = Union[RawResponse, Mapping[str, Any], str, None]


class ActionDispatcher:
    """
    Orchestrates resolution and execution for batches of candidates.

    Safe to share between threads: the only mutable shared state lives in the
    ConcurrencyGuard, and each dispatch() call owns its invocations.

    Example:
        ```python
        dispatcher = ActionDispatcher(registry, executor=executor)
        invocations = dispatcher.dispatch(
            [{"action": "TAKE_ORDER", "params": {"ticker": "ABC"}}, {"text": "hi"}],
            state={},
            actor_id="room-42",
        )
        [inv.outcome for inv in invocations]
        # [InvocationOutcome.SUCCEEDED, InvocationOutcome.UNRESOLVED]
        ```
    """

    def __init__(
        self,
        registry: ActionRegistry,
        executor: Optional[ActionExecutor] = None,
        guard: Optional[ConcurrencyGuard] = None,
        validator: Optional[ValidatorStage] = None,
        engine_logger: Optional[EngineLogger] = None,
        memory_log: Optional[MemoryLog] = None,
    ):
        self.registry = registry
        self.resolver = ActionResolver(registry)
        self.validator = validator or ValidatorStage()
        if executor is None:
            executor = ActionExecutor(guard=guard)
        self.executor = executor
        self.guard = guard or executor.guard
        self.engine_logger = engine_logger or StdlibEngineLogger()
        self.memory_log = memory_log

    def dispatch(
        self,
        candidates: Iterable[Candidate],
        state: Optional[Dict[str, Any]] = None,
        actor_id: Any = "anonymous",
    ) -> List[InvocationContext]:
        """
        Process a batch of candidates.

        Args:
            candidates: Response candidates, each with an optional `action` field
            state: Conversation working state shared by the batch
            actor_id: Identity scoping locks and rate limits

        Returns:
            One InvocationContext per candidate, in input order
        """
        if state is None:
            state = {}
        actor_id = str(actor_id)

        invocations: List[InvocationContext] = []
        for index, candidate in enumerate(candidates):
            invocation = InvocationContext(index=index, actor_id=actor_id)
            try:
                self._process(invocation, candidate, state, invocations)
            except ActionEngineError as e:
                outcome = InvocationOutcome(e.outcome) if e.outcome else InvocationOutcome.FAILED
                invocation.finish(outcome, e.message)
            except Exception as e:
                logger.exception(f"Unexpected error dispatching candidate {index}")
                invocation.finish(InvocationOutcome.FAILED, f"internal error: {e}")

            self._report(invocation)
            invocations.append(invocation)

        logger.info(f"Dispatched {len(invocations)} candidates for actor {actor_id}: {summarize(invocations)}")
        return invocations

    def _process(
        self,
        invocation: InvocationContext,
        candidate: Candidate,
        state: Dict[str, Any],
        earlier: List[InvocationContext],
    ) -> None:
        message = self._coerce_candidate(candidate)
        invocation.message = message
        invocation.raw_token = message.action

        invocation.transition(InvocationState.RESOLVING)
        if message.action is None or not message.action.strip():
            raise UnresolvedAction(NO_ACTION_REASON, message.action)

        resolution = self.resolver.explain(message.action)
        invocation.normalized_key = resolution.key
        if resolution.action is None:
            raise UnresolvedAction(f"unknown action '{message.action}'", message.action)

        action = resolution.action
        invocation.resolved_action = action
        invocation.transition(InvocationState.RESOLVED)

        self._check_dependencies(action, earlier)

        invocation.transition(InvocationState.VALIDATING)
        verdict = self.validator.validate(action, message, state)
        invocation.validation_result = verdict
        if not verdict.passed:
            raise ValidationFailure(verdict.reason, action.name)

        invocation.transition(InvocationState.ADMITTED)
        invocation.rate_limit_key = self.guard.admit(action, invocation.actor_id)
        invocation.lock_key = guard_key(action, invocation.actor_id)

        invocation.transition(InvocationState.EXECUTING)
        result = self.executor.execute(action, message, state, invocation, params=verdict.params)
        invocation.result = result
        self._record_execution(invocation, result)

    @staticmethod
    def _coerce_candidate(candidate: Candidate) -> RawResponse:
        if isinstance(candidate, RawResponse):
            return candidate
        if candidate is None:
            return RawResponse()
        if isinstance(candidate, str):
            return RawResponse(action=candidate)
        try:
            return RawResponse.model_validate(dict(candidate))
        except (ValidationError, TypeError, ValueError) as e:
            raise UnresolvedAction(f"unreadable candidate: {e}")

    def _check_dependencies(self, action: Action, earlier: List[InvocationContext]) -> None:
        for dependency in sorted(action.dependencies):
            required = self.registry.lookup(normalize(dependency))
            satisfied = required is not None and any(
                inv.resolved_action is required and inv.succeeded for inv in earlier
            )
            if not satisfied:
                raise ValidationFailure(f"unmet dependency: {dependency}", action.name)

    def _record_execution(self, invocation: InvocationContext, result: ExecutionResult) -> None:
        if result.status is ExecutionStatus.LOCK_CONTENDED:
            raise LockContended(result.error or "lock contended", invocation.action_name, invocation.lock_key)

        if result.success:
            invocation.finish(InvocationOutcome.SUCCEEDED)
        elif result.rolled_back:
            invocation.finish(InvocationOutcome.ROLLED_BACK, result.error)
        else:
            invocation.finish(InvocationOutcome.FAILED, result.error)

        if self.memory_log is not None:
            record = {
                "type": "action_invocation",
                "action": invocation.action_name,
                "actor_id": invocation.actor_id,
                "outcome": invocation.outcome.value,
                "attempts": invocation.attempts,
            }
            try:
                self.memory_log.append(record)
            except Exception as e:
                logger.error(f"Memory log append failed for '{invocation.action_name}': {e}", exc_info=True)

    def _report(self, invocation: InvocationContext) -> None:
        outcome = invocation.outcome
        if outcome is InvocationOutcome.SUCCEEDED:
            return

        fields = {
            "action": invocation.action_name,
            "reason": invocation.reason,
            "index": invocation.index,
            "actor_id": invocation.actor_id,
        }
        if outcome in (InvocationOutcome.FAILED, InvocationOutcome.ROLLED_BACK):
            fields["attempts"] = invocation.attempts
            self.engine_logger.error(f"Action {outcome.value}", fields)
        else:
            self.engine_logger.warn(f"Action {outcome.value}", fields)


def summarize(invocations: Iterable[InvocationContext]) -> Dict[str, int]:
    """Count invocations per outcome."""
    counts = Counter(inv.outcome.value for inv in invocations if inv.outcome is not None)
    return dict(counts)


__all__ = ["ActionDispatcher", "NO_ACTION_REASON", "summarize"]
