"""
action_engine/plugins - built-in actions
"""
from action_engine.ai.actions import ActionRegistry
from action_engine.plugins.conversation import continue_action, mark_conversation_complete, none_action
from action_engine.plugins.trading import take_order

BUILTIN_ACTIONS = (none_action, continue_action, mark_conversation_complete, take_order)


def register_builtin_actions(registry: ActionRegistry) -> ActionRegistry:
    """Register the built-in actions; raises DuplicateRegistration on key clashes."""
    for action in BUILTIN_ACTIONS:
        registry.register(action)
    return registry


__all__ = ["BUILTIN_ACTIONS", "register_builtin_actions"]
