"""
action_engine/errors.py

Error taxonomy for action resolution and execution.

Every per-candidate failure is an ActionEngineError carrying the outcome it
maps to; the dispatch loop converts them into recorded outcomes. Only
DuplicateRegistration escapes, and only while the registry is being built.
"""
from typing import Any, Dict, Optional


class ActionEngineError(Exception):
    """
    Base class for engine errors.

    Attributes:
        message: Human-readable reason, recorded on the invocation
        action_name: Action the error relates to (None when unresolved)
        outcome: Invocation outcome value this error maps to
    """

    outcome: Optional[str] = None

    def __init__(self, message: str, action_name: Optional[str] = None):
        self.message = message
        self.action_name = action_name
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging and API responses."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "action_name": self.action_name,
            "outcome": self.outcome,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(action_name={self.action_name!r}, message={self.message!r})"


class UnresolvedAction(ActionEngineError):
    """Raw token is absent or does not match any registered action."""

    outcome = "Unresolved"

    def __init__(self, message: str, raw_token: Optional[str] = None):
        self.raw_token = raw_token
        super().__init__(message)


class ValidationFailure(ActionEngineError):
    """Validation gate (or a dependency check) rejected the invocation."""

    outcome = "ValidationFailed"


class RateLimited(ActionEngineError):
    """Rate window for the (action, actor) key is exhausted."""

    outcome = "RateLimited"

    def __init__(self, message: str, action_name: Optional[str] = None, key: Optional[str] = None):
        self.key = key
        super().__init__(message, action_name)


class LockContended(ActionEngineError):
    """Another execution currently holds the lease for the key."""

    outcome = "LockContended"

    def __init__(self, message: str, action_name: Optional[str] = None, key: Optional[str] = None):
        self.key = key
        super().__init__(message, action_name)


class TransientExecutionFailure(ActionEngineError):
    """
    Retryable handler failure.

    Handlers raise this for conditions worth retrying (I/O hiccups, busy
    upstreams). Handler timeouts are reported as this type as well.
    """

    outcome = "Failed"

    def __init__(self, message: str, action_name: Optional[str] = None, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message, action_name)


class HandlerTimeout(TransientExecutionFailure):
    """Handler attempt exceeded its time budget."""


class TerminalExecutionFailure(ActionEngineError):
    """Non-retryable handler failure; triggers rollback."""

    outcome = "Failed"

    def __init__(self, message: str, action_name: Optional[str] = None, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message, action_name)


class AttemptCancelled(TerminalExecutionFailure):
    """
    Raised inside a handler attempt the executor has abandoned (timeout or
    shutdown). Changes can no longer be recorded for compensation.
    """


class DuplicateRegistration(ActionEngineError):
    """
    A normalized name or simile already belongs to another action.

    Raised at registry build time only; fatal to process init.
    """

    def __init__(self, key: str, action_name: str, existing_name: str):
        self.key = key
        self.existing_name = existing_name
        super().__init__(
            f"Action '{action_name}' key '{key}' is already registered by '{existing_name}'",
            action_name,
        )


__all__ = [
    "ActionEngineError",
    "UnresolvedAction",
    "ValidationFailure",
    "RateLimited",
    "LockContended",
    "TransientExecutionFailure",
    "HandlerTimeout",
    "TerminalExecutionFailure",
    "AttemptCancelled",
    "DuplicateRegistration",
]
