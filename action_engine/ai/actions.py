"""
action_engine/ai/actions.py

Action registration.

This module provides the typed registry LLM-produced action identifiers are
resolved against.

Key components:
- Action: Complete, immutable definition of an action
- ActionRegistry: Central registry keyed by normalized name and similes

Invariant: every normalized key maps to exactly one action. Collisions are
rejected at registration time, so lookups never have to break ties.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple, Type
import logging
import threading

from pydantic import BaseModel

from action_engine.ai.normalizer import normalize
from action_engine.errors import DuplicateRegistration

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Action:
    """
    Complete definition of an LLM-triggerable action.

    Attributes:
        name: Unique identifier, case preserved, compared case-insensitively
        handler: Effectful operation, called as handler(message, state, context)
        description: Human-readable description for prompts and listings
        similes: Alternate identifiers, fully equivalent to name
        examples: Advisory usage examples (not used for control flow)
        validate: Gating predicate validate(message, state) -> bool | ValidationResult
        rollback: Compensation rollback(changes_newest_first, context)
        dependencies: Action names that must succeed earlier in the same batch
        parameters_schema: Pydantic model the candidate's params must satisfy
        category: Free-form classification (query, mutation, system, ...)
        timeout_seconds: Per-attempt timeout override
        max_attempts: Attempt ceiling override
        rate_limit: Admissions per window override (0 disables limiting)
        rate_window_seconds: Window length override
    """

    # Identity
    name: str
    handler: Callable[..., Any]
    description: str = ""
    similes: FrozenSet[str] = field(default_factory=frozenset)
    examples: Tuple[Any, ...] = ()

    # Gating and compensation
    validate: Optional[Callable[..., Any]] = None
    rollback: Optional[Callable[..., Any]] = None
    dependencies: FrozenSet[str] = field(default_factory=frozenset)
    parameters_schema: Optional[Type[BaseModel]] = None

    # Classification
    category: str = "mutation"

    # Execution overrides
    timeout_seconds: Optional[float] = None
    max_attempts: Optional[int] = None
    rate_limit: Optional[int] = None
    rate_window_seconds: Optional[float] = None

    def __post_init__(self):
        # Accept any iterable for the set-like fields; a bare string is one item.
        for attr in ("similes", "dependencies"):
            value = getattr(self, attr)
            if isinstance(value, str):
                value = (value,)
            object.__setattr__(self, attr, frozenset(value or ()))
        object.__setattr__(self, "examples", tuple(self.examples or ()))

        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError(f"Action '{self.name}' max_attempts must be at least 1, got {self.max_attempts}")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError(f"Action '{self.name}' timeout_seconds must be positive, got {self.timeout_seconds}")

    @property
    def key(self) -> str:
        """Normalized primary name."""
        return normalize(self.name)

    def keys(self) -> List[str]:
        """Normalized name followed by normalized similes, de-duplicated."""
        keys = [self.key]
        for simile in sorted(self.similes):
            simile_key = normalize(simile)
            if simile_key not in keys:
                keys.append(simile_key)
        return keys

    def to_openai_tool(self) -> Dict[str, Any]:
        """
        Convert to OpenAI function calling format.

        Actions without a parameters schema advertise an empty object.
        """
        if self.parameters_schema is not None:
            parameters = self.parameters_schema.model_json_schema()
        else:
            parameters = {"type": "object", "properties": {}}
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary representation.

        Useful for API responses and debugging.
        """
        return {
            "name": self.name,
            "key": self.key,
            "description": self.description,
            "similes": sorted(self.similes),
            "category": self.category,
            "dependencies": sorted(self.dependencies),
            "has_validate": self.validate is not None,
            "has_rollback": self.rollback is not None,
            "examples": list(self.examples),
        }


class ActionRegistry:
    """
    Central registry for all LLM-triggerable actions.

    Registration is single-writer (serialized by an internal lock) and
    happens at startup or plugin load. Lookups are lock-free: every
    registration publishes a fresh index, so readers always see a complete
    mapping.

    Example:
        ```python
        registry = ActionRegistry()

        @registry.action(
            name="take_order",
            similes=["BUY_ORDER"],
            description="Place an order for a ticker",
        )
        def take_order(message, state, context):
            ...

        registry.lookup("takeorder")   # -> Action(take_order)
        ```
    """

    def __init__(self, actions: Optional[Iterable[Action]] = None):
        self._actions: List[Action] = []
        self._index: Dict[str, Action] = {}
        self._write_lock = threading.Lock()

        for action in actions or ():
            self.register(action)

    def register(self, action: Action) -> Action:
        """
        Register an action under its normalized name and similes.

        Registering the same Action object twice is a no-op.

        Raises:
            ValueError: If the name or a simile normalizes to the empty key
            DuplicateRegistration: If any key already maps to a different action
        """
        keys = action.keys()
        if "" in keys:
            raise ValueError(f"Action '{action.name}' has a name or simile that normalizes to an empty key")

        with self._write_lock:
            index = self._index
            if all(index.get(key) is action for key in keys):
                logger.debug(f"Action already registered: {action.name}")
                return action

            for key in keys:
                existing = index.get(key)
                if existing is not None and existing is not action:
                    raise DuplicateRegistration(key, action.name, existing.name)

            new_index = dict(index)
            for key in keys:
                new_index[key] = action
            self._index = new_index
            self._actions = self._actions + [action]

        logger.info(f"Registered action: {action.name} (keys={keys}, category={action.category})")
        return action

    def action(self, name: str, **kwargs: Any) -> Callable:
        """
        Decorator for registering a handler function as an action.

        Keyword arguments are passed to Action; the decorated function
        becomes the handler and is returned unchanged.
        """
        def decorator(func: Callable) -> Callable:
            self.register(Action(name=name, handler=func, **kwargs))
            return func

        return decorator

    def lookup(self, key: str) -> Optional[Action]:
        """
        Look up an action by an already-normalized key.

        Returns:
            Action if found, None otherwise (the empty key never matches)
        """
        if not key:
            return None
        return self._index.get(key)

    def get(self, name: str) -> Optional[Action]:
        """Look up an action by any raw name or simile."""
        return self.lookup(normalize(name))

    def all(self) -> List[Action]:
        """All registered actions in registration order."""
        return list(self._actions)

    def keys_for(self, action: Action) -> List[str]:
        """Keys currently mapped to the given action."""
        return [key for key, mapped in self._index.items() if mapped is action]

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def describe_actions(self) -> str:
        """
        Render a deterministic listing of the registered actions.

        One line per action in registration order, similes in parentheses;
        suitable for prompt context and FAQ/debug output.
        """
        lines = []
        for action in self._actions:
            line = f"- {action.name}: {action.description}" if action.description else f"- {action.name}"
            if action.similes:
                line += f" (also: {', '.join(sorted(action.similes))})"
            lines.append(line)
        return "\n".join(lines)

    def export_tools(self) -> List[Dict[str, Any]]:
        """Export all actions as OpenAI tools, registration order."""
        return [action.to_openai_tool() for action in self._actions]

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get registry statistics.

        Returns:
            Dictionary with counts and breakdowns
        """
        by_category: Dict[str, int] = {}
        for action in self._actions:
            by_category[action.category] = by_category.get(action.category, 0) + 1

        return {
            "total_actions": len(self._actions),
            "total_keys": len(self._index),
            "by_category": by_category,
        }


__all__ = [
    "Action",
    "ActionRegistry",
]
