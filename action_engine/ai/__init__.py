"""
action_engine/ai - action resolution

Turns free-text action tokens into registered actions:
- normalizer: token canonicalization
- actions: Action definition and ActionRegistry
- resolver: token -> action lookup
- validation: gating predicate stage
- context / result: per-invocation state and result types
"""
from action_engine.ai.normalizer import normalize
from action_engine.ai.result import (
    ExecutionResult,
    ExecutionStatus,
    InvocationOutcome,
    InvocationState,
    ValidationResult,
)
from action_engine.ai.context import (
    AppliedChange,
    HandlerContext,
    InvocationContext,
    RawResponse,
)
from action_engine.ai.actions import Action, ActionRegistry
from action_engine.ai.resolver import ActionResolver, Resolution
from action_engine.ai.validation import ValidatorStage

__all__ = [
    "normalize",
    "ExecutionResult",
    "ExecutionStatus",
    "InvocationOutcome",
    "InvocationState",
    "ValidationResult",
    "AppliedChange",
    "HandlerContext",
    "InvocationContext",
    "RawResponse",
    "Action",
    "ActionRegistry",
    "ActionResolver",
    "Resolution",
    "ValidatorStage",
]
