"""
action_engine/ai/resolver.py

Maps a raw, LLM-produced action token onto exactly one registered action.
"""
from dataclasses import dataclass
from typing import Any, Optional
import logging

from action_engine.ai.actions import Action, ActionRegistry
from action_engine.ai.normalizer import normalize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    """Normalized key for a raw token and the action it resolved to, if any."""

    raw_token: Any
    key: str
    action: Optional[Action] = None

    @property
    def resolved(self) -> bool:
        return self.action is not None


class ActionResolver:
    """
    Resolver over an ActionRegistry.

    The registry guarantees one action per key, so the first match is the
    only match. Unresolved tokens are reported to the caller, which logs
    and moves on; the resolver itself never raises.
    """

    def __init__(self, registry: ActionRegistry):
        self.registry = registry

    def resolve(self, raw_token: Any) -> Optional[Action]:
        """Resolve a raw token; None when nothing matches."""
        return self.explain(raw_token).action

    def explain(self, raw_token: Any) -> Resolution:
        """Resolve a raw token, keeping the normalized key for diagnostics."""
        key = normalize(raw_token)
        action = self.registry.lookup(key)
        if action is None:
            logger.debug(f"No action for token {raw_token!r} (key={key!r})")
        return Resolution(raw_token=raw_token, key=key, action=action)


__all__ = ["Resolution", "ActionResolver"]
