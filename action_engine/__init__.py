"""
action_engine - resolves LLM-produced action tokens and executes their handlers.

Usage:
    >>> from action_engine import ActionEngine, Action
    >>> engine = ActionEngine()
    >>> engine.registry.register(Action(name="take_order", similes={"BUY_ORDER"}, handler=handler))
    >>> engine.dispatch([{"action": "TAKE_ORDER", "params": {"ticker": "ABC"}}], state={}, actor_id="u1")
"""
from action_engine.errors import (
    ActionEngineError,
    DuplicateRegistration,
    LockContended,
    RateLimited,
    TerminalExecutionFailure,
    TransientExecutionFailure,
    UnresolvedAction,
    ValidationFailure,
)
from action_engine.ai import (
    Action,
    ActionRegistry,
    ActionResolver,
    HandlerContext,
    InvocationContext,
    InvocationOutcome,
    RawResponse,
    ValidationResult,
    normalize,
)
from action_engine.engine import ActionDispatcher, ActionEngine, ActionExecutor, ConcurrencyGuard

__version__ = "0.1.0"

__all__ = [
    "ActionEngineError",
    "DuplicateRegistration",
    "LockContended",
    "RateLimited",
    "TerminalExecutionFailure",
    "TransientExecutionFailure",
    "UnresolvedAction",
    "ValidationFailure",
    "Action",
    "ActionRegistry",
    "ActionResolver",
    "HandlerContext",
    "InvocationContext",
    "InvocationOutcome",
    "RawResponse",
    "ValidationResult",
    "normalize",
    "ActionDispatcher",
    "ActionEngine",
    "ActionExecutor",
    "ConcurrencyGuard",
]
