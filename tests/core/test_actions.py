"""
tests/core/test_actions.py

Unit tests for Action and ActionRegistry.
"""
import threading

import pytest
from pydantic import BaseModel, Field

from action_engine.ai.actions import Action, ActionRegistry
from action_engine.errors import DuplicateRegistration


def noop(message, state, context):
    return None


class OrderParams(BaseModel):
    """Order parameter model"""
    ticker: str = Field(..., description="Ticker symbol")
    quantity: int = Field(default=1, description="Units")


class TestAction:
    """Test suite for Action"""

    def test_create_action(self):
        action = Action(name="take_order", handler=noop, description="Take an order")

        assert action.name == "take_order"
        assert action.handler is noop
        assert action.similes == frozenset()
        assert action.dependencies == frozenset()
        assert action.validate is None
        assert action.rollback is None
        assert action.category == "mutation"

    def test_iterables_are_frozen(self):
        action = Action(name="a", handler=noop, similes=["B", "C"], dependencies="other", examples=[{"x": 1}])

        assert action.similes == frozenset({"B", "C"})
        assert action.dependencies == frozenset({"other"})
        assert action.examples == ({"x": 1},)

    def test_immutable(self):
        action = Action(name="a", handler=noop)
        with pytest.raises(Exception):
            action.name = "b"

    def test_keys_include_name_and_similes(self):
        action = Action(name="take_order", handler=noop, similes={"BUY_ORDER", "TakeOrder"})

        assert action.key == "takeorder"
        # TakeOrder collapses onto the primary key
        assert action.keys() == ["takeorder", "buyorder"]

    def test_to_dict(self):
        action = Action(
            name="take_order",
            handler=noop,
            description="Take an order",
            similes={"BUY_ORDER"},
            dependencies={"login"},
            validate=lambda m, s: True,
        )

        result = action.to_dict()

        assert result["name"] == "take_order"
        assert result["key"] == "takeorder"
        assert result["similes"] == ["BUY_ORDER"]
        assert result["dependencies"] == ["login"]
        assert result["has_validate"] is True
        assert result["has_rollback"] is False

    @pytest.mark.parametrize("field", ["max_attempts", "timeout_seconds"])
    def test_execution_overrides_must_be_positive(self, field):
        with pytest.raises(ValueError, match=field):
            Action(name="a", handler=noop, **{field: 0})

    def test_to_openai_tool_with_schema(self):
        action = Action(name="take_order", handler=noop, description="d", parameters_schema=OrderParams)

        tool = action.to_openai_tool()

        assert tool["type"] == "function"
        assert tool["function"]["name"] == "take_order"
        assert "ticker" in tool["function"]["parameters"]["required"]

    def test_to_openai_tool_without_schema(self):
        tool = Action(name="none", handler=noop).to_openai_tool()
        assert tool["function"]["parameters"] == {"type": "object", "properties": {}}


class TestActionRegistry:
    """Test suite for ActionRegistry"""

    def test_register_and_lookup(self, registry):
        action = registry.register(Action(name="take_order", handler=noop, similes={"BUY_ORDER"}))

        assert registry.lookup("takeorder") is action
        assert registry.lookup("buyorder") is action
        assert registry.lookup("sellorder") is None

    def test_empty_key_never_matches(self, registry):
        registry.register(Action(name="take_order", handler=noop))
        assert registry.lookup("") is None
        assert registry.get("   ") is None

    @pytest.mark.parametrize("name,similes", [
        ("", set()),
        ("   ", set()),
        ("___", set()),
        ("valid", {"__"}),
    ])
    def test_rejects_empty_normalized_keys(self, registry, name, similes):
        with pytest.raises(ValueError, match="empty key"):
            registry.register(Action(name=name, handler=noop, similes=similes))
        assert len(registry) == 0

    def test_duplicate_name_rejected(self, registry):
        registry.register(Action(name="take_order", handler=noop))

        with pytest.raises(DuplicateRegistration) as exc_info:
            registry.register(Action(name="TAKE_ORDER", handler=noop))

        assert exc_info.value.key == "takeorder"
        assert exc_info.value.existing_name == "take_order"

    def test_simile_colliding_with_name_rejected(self, registry):
        registry.register(Action(name="buy_order", handler=noop))

        with pytest.raises(DuplicateRegistration):
            registry.register(Action(name="take_order", handler=noop, similes={"BuyOrder"}))

    def test_simile_colliding_with_simile_rejected(self, registry):
        registry.register(Action(name="take_order", handler=noop, similes={"PLACE_ORDER"}))

        with pytest.raises(DuplicateRegistration):
            registry.register(Action(name="submit", handler=noop, similes={"place_order"}))

    def test_failed_registration_is_atomic(self, registry):
        registry.register(Action(name="take_order", handler=noop))

        with pytest.raises(DuplicateRegistration):
            registry.register(Action(name="submit", handler=noop, similes={"SEND", "TAKE_ORDER"}))

        assert registry.lookup("submit") is None
        assert registry.lookup("send") is None
        assert len(registry) == 1

    def test_reregistering_same_action_is_noop(self, registry):
        action = Action(name="take_order", handler=noop, similes={"BUY_ORDER"})
        registry.register(action)
        registry.register(action)

        assert registry.all() == [action]

    def test_all_keeps_registration_order(self, registry):
        names = ["zeta", "alpha", "mid"]
        for name in names:
            registry.register(Action(name=name, handler=noop))

        assert [a.name for a in registry.all()] == names

    def test_decorator_registration(self, registry):
        @registry.action(name="greet", similes=["SAY_HELLO"], description="Say hello")
        def greet(message, state, context):
            return "hello"

        action = registry.get("SAY_HELLO")
        assert action is not None
        assert action.handler is greet
        assert greet(None, None, None) == "hello"

    def test_get_and_contains_normalize(self, registry):
        action = registry.register(Action(name="take_order", handler=noop))

        assert registry.get("  Take_Order ") is action
        assert "TAKE_ORDER" in registry
        assert "sell" not in registry

    def test_keys_for(self, registry):
        action = registry.register(Action(name="take_order", handler=noop, similes={"BUY_ORDER"}))
        assert sorted(registry.keys_for(action)) == ["buyorder", "takeorder"]

    def test_describe_actions(self, registry):
        registry.register(Action(name="take_order", handler=noop, description="Place an order", similes={"BUY_ORDER"}))
        registry.register(Action(name="none", handler=noop))

        assert registry.describe_actions() == (
            "- take_order: Place an order (also: BUY_ORDER)\n"
            "- none"
        )

    def test_statistics(self, registry):
        registry.register(Action(name="a", handler=noop, similes={"A2"}, category="query"))
        registry.register(Action(name="b", handler=noop))

        stats = registry.get_statistics()

        assert stats["total_actions"] == 2
        assert stats["total_keys"] == 3
        assert stats["by_category"] == {"query": 1, "mutation": 1}

    def test_export_tools(self, registry):
        registry.register(Action(name="take_order", handler=noop, description="d", parameters_schema=OrderParams))
        registry.register(Action(name="ping", handler=noop))

        tools = registry.export_tools()

        assert [tool["function"]["name"] for tool in tools] == ["take_order", "ping"]
        assert tools[0] == registry.get("take_order").to_openai_tool()
        assert tools[1]["function"]["parameters"] == {"type": "object", "properties": {}}

    def test_constructor_registers_actions(self):
        registry = ActionRegistry([Action(name="a", handler=noop), Action(name="b", handler=noop)])
        assert [a.name for a in registry.all()] == ["a", "b"]

    def test_concurrent_registration_keeps_uniqueness(self, registry):
        """Racing registrations of the same key: exactly one wins."""
        errors = []
        barrier = threading.Barrier(8)

        def worker(i):
            barrier.wait()
            try:
                registry.register(Action(name=f"SHARED_{'_' * i}KEY", handler=noop))
            except DuplicateRegistration as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(registry) == 1
        assert len(errors) == 7
