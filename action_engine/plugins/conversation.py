"""
action_engine/plugins/conversation.py

Conversation flow actions: completion marker and no-op actions.
"""
from typing import Any, List, Mapping

from action_engine.ai.actions import Action
from action_engine.ai.context import AppliedChange, HandlerContext, RawResponse
from action_engine.errors import TerminalExecutionFailure

CONVERSATION_SCOPE = "conversation"


def handle_mark_complete(message: RawResponse, state: Mapping[str, Any], context: HandlerContext) -> dict:
    if context.state_store is None:
        raise TerminalExecutionFailure("mark_conversation_complete requires a state store", context.action_name)

    conversation = context.state_store.get(CONVERSATION_SCOPE, context.actor_id) or {}
    was_complete = bool(conversation.get("complete"))
    conversation["complete"] = True
    context.state_store.set(CONVERSATION_SCOPE, context.actor_id, conversation)
    context.record_change("conversation_marked_complete", previous=was_complete)

    if context.memory_log is not None:
        context.memory_log.append({
            "type": "conversation_complete",
            "actor_id": context.actor_id,
            "summary": message.text,
        })
    return {"complete": True}


def rollback_mark_complete(changes: List[AppliedChange], context: HandlerContext) -> None:
    for change in changes:
        if change.description != "conversation_marked_complete":
            continue
        conversation = context.state_store.get(CONVERSATION_SCOPE, context.actor_id) or {}
        conversation["complete"] = change.data.get("previous", False)
        context.state_store.set(CONVERSATION_SCOPE, context.actor_id, conversation)


def handle_noop(message: RawResponse, state: Mapping[str, Any], context: HandlerContext) -> None:
    return None


mark_conversation_complete = Action(
    name="mark_conversation_complete",
    similes={"END_CONVERSATION", "CONVERSATION_COMPLETE"},
    description="Mark the current conversation as finished",
    handler=handle_mark_complete,
    rollback=rollback_mark_complete,
    category="system",
)

none_action = Action(
    name="none",
    similes={"NO_ACTION"},
    description="Respond without taking any action",
    handler=handle_noop,
    category="system",
    rate_limit=0,
)

continue_action = Action(
    name="continue",
    similes={"CONTINUE_CONVERSATION"},
    description="Keep the conversation going with a follow-up message",
    handler=handle_noop,
    category="system",
    rate_limit=0,
)


__all__ = [
    "CONVERSATION_SCOPE",
    "mark_conversation_complete",
    "none_action",
    "continue_action",
]
