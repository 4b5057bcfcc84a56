"""
action_engine/interfaces.py

Collaborator protocols the engine consumes but does not implement.

Reference adapters live in action_engine.stores (state store, memory log),
action_engine.logging_config (logger) and action_engine.engine.clock.
"""
from typing import Any, Dict, Mapping, Optional, Protocol


class StateStore(Protocol):
    """Opaque key/value store for conversation and working state."""

    def get(self, scope: str, id: str) -> Optional[Any]:
        """Return the stored value, or None when not found."""
        ...

    def set(self, scope: str, id: str, value: Any) -> None:
        ...


class MemoryLog(Protocol):
    """Append-only log of durable side-channel facts; never read back by the engine."""

    def append(self, record: Dict[str, Any]) -> None:
        ...


class EngineLogger(Protocol):
    """Sink for per-candidate diagnostics."""

    def warn(self, msg: str, fields: Optional[Mapping[str, Any]] = None) -> None:
        ...

    def error(self, msg: str, fields: Optional[Mapping[str, Any]] = None) -> None:
        ...


class Clock(Protocol):
    """Monotonic time source used for windows, leases and backoff."""

    def now(self) -> float:
        ...

    def sleep(self, seconds: float) -> None:
        ...


__all__ = ["StateStore", "MemoryLog", "EngineLogger", "Clock"]
