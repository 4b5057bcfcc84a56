"""
action_engine/ai/result.py

Result types shared by the validator stage, the executor and the dispatch loop.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class InvocationOutcome(str, Enum):
    """Terminal outcome recorded for every candidate in a batch."""

    UNRESOLVED = "Unresolved"
    VALIDATION_FAILED = "ValidationFailed"
    RATE_LIMITED = "RateLimited"
    LOCK_CONTENDED = "LockContended"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    ROLLED_BACK = "RolledBack"


class InvocationState(str, Enum):
    """Lifecycle position of an invocation; COMPLETED once an outcome is set."""

    CREATED = "created"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    VALIDATING = "validating"
    ADMITTED = "admitted"
    EXECUTING = "executing"
    COMPLETED = "completed"


class ExecutionStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    LOCK_CONTENDED = "lock_contended"


@dataclass(frozen=True)
class ValidationResult:
    """
    Verdict of the validation gate.

    Attributes:
        passed: Whether the action may proceed to admission
        reason: Why it was rejected (empty when passed)
        params: Parsed parameters model when the action declares a schema
    """

    passed: bool
    reason: str = ""
    params: Any = None

    @staticmethod
    def ok(params: Any = None) -> "ValidationResult":
        return ValidationResult(passed=True, params=params)

    @staticmethod
    def fail(reason: str) -> "ValidationResult":
        return ValidationResult(passed=False, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {"pass": self.passed, "reason": self.reason}


@dataclass
class ExecutionResult:
    """
    Outcome of one executor run (all attempts included).

    Attributes:
        success: True when the handler completed
        status: Fine-grained status (lock contention is not a handler failure)
        data: Handler output on success
        error: Failure message
        error_type: Name of the failure class
        attempts: Number of handler attempts made
        rolled_back: Whether compensation ran to completion after a failure
    """

    success: bool
    status: ExecutionStatus
    data: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    attempts: int = 0
    rolled_back: bool = False

    @staticmethod
    def ok(data: Any = None, attempts: int = 1, **kwargs) -> "ExecutionResult":
        return ExecutionResult(success=True, status=ExecutionStatus.SUCCEEDED, data=data, attempts=attempts, **kwargs)

    @staticmethod
    def fail(error: str, error_type: Optional[str] = None, **kwargs) -> "ExecutionResult":
        return ExecutionResult(success=False, status=ExecutionStatus.FAILED, error=error, error_type=error_type, **kwargs)

    @staticmethod
    def lock_contended(error: str) -> "ExecutionResult":
        return ExecutionResult(
            success=False,
            status=ExecutionStatus.LOCK_CONTENDED,
            error=error,
            error_type="LockContended",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "data": self.data,
            "error": self.error,
            "error_type": self.error_type,
            "attempts": self.attempts,
            "rolled_back": self.rolled_back,
        }


__all__ = [
    "InvocationOutcome",
    "InvocationState",
    "ExecutionStatus",
    "ValidationResult",
    "ExecutionResult",
]
