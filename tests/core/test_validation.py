"""
tests/core/test_validation.py

Unit tests for the validator stage.
"""
import pytest
from pydantic import BaseModel, Field

from action_engine.ai.actions import Action
from action_engine.ai.context import RawResponse
from action_engine.ai.result import ValidationResult
from action_engine.ai.validation import REJECTED_REASON, ValidatorStage


def noop(message, state, context):
    return None


class QuantityParams(BaseModel):
    quantity: int = Field(..., gt=0)


@pytest.fixture
def stage():
    return ValidatorStage()


class TestValidatorStage:
    """Test suite for ValidatorStage"""

    def test_no_validator_passes(self, stage):
        result = stage.validate(Action(name="a", handler=noop), RawResponse(action="a"), {})
        assert result.passed
        assert result.reason == ""

    def test_boolean_true_passes(self, stage):
        action = Action(name="a", handler=noop, validate=lambda m, s: True)
        assert stage.validate(action, RawResponse(action="a"), {}).passed

    def test_boolean_false_rejects(self, stage):
        action = Action(name="a", handler=noop, validate=lambda m, s: False)

        result = stage.validate(action, RawResponse(action="a"), {})

        assert not result.passed
        assert result.reason == REJECTED_REASON

    def test_async_validator_is_awaited(self, stage):
        async def approve(message, state):
            return True

        async def refuse(message, state):
            return False

        approved = stage.validate(Action(name="a", handler=noop, validate=approve), RawResponse(action="a"), {})
        refused = stage.validate(Action(name="b", handler=noop, validate=refuse), RawResponse(action="b"), {})

        assert approved.passed
        assert not refused.passed
        assert refused.reason == REJECTED_REASON

    def test_async_validator_result_is_kept(self, stage):
        async def check(message, state):
            return ValidationResult.fail("market closed")

        result = stage.validate(Action(name="a", handler=noop, validate=check), RawResponse(action="a"), {})

        assert result.reason == "market closed"

    def test_validation_result_is_kept(self, stage):
        action = Action(name="a", handler=noop, validate=lambda m, s: ValidationResult.fail("No valid ticker symbol found"))

        result = stage.validate(action, RawResponse(action="a"), {})

        assert result.to_dict() == {"pass": False, "reason": "No valid ticker symbol found"}

    def test_exception_becomes_failed_result(self, stage):
        def explode(message, state):
            raise RuntimeError("upstream down")

        action = Action(name="a", handler=noop, validate=explode)

        result = stage.validate(action, RawResponse(action="a"), {})

        assert not result.passed
        assert result.reason == "validation error: upstream down"

    def test_validator_sees_read_only_state(self, stage):
        def mutate(message, state):
            state["touched"] = True
            return True

        state = {"x": 1}
        action = Action(name="a", handler=noop, validate=mutate)

        result = stage.validate(action, RawResponse(action="a"), state)

        assert not result.passed
        assert result.reason.startswith("validation error:")
        assert state == {"x": 1}

    def test_validator_reads_state(self, stage):
        action = Action(name="a", handler=noop, validate=lambda m, s: s.get("logged_in", False))

        assert stage.validate(action, RawResponse(action="a"), {"logged_in": True}).passed
        assert not stage.validate(action, RawResponse(action="a"), {}).passed

    def test_none_state_is_allowed(self, stage):
        action = Action(name="a", handler=noop, validate=lambda m, s: len(s) == 0)
        assert stage.validate(action, RawResponse(action="a"), None).passed

    def test_schema_failure_reported(self, stage):
        action = Action(name="a", handler=noop, parameters_schema=QuantityParams)

        result = stage.validate(action, RawResponse(action="a", params={"quantity": 0}), {})

        assert not result.passed
        assert result.reason.startswith("validation error: quantity:")

    def test_schema_runs_before_predicate(self, stage):
        calls = []
        action = Action(
            name="a",
            handler=noop,
            parameters_schema=QuantityParams,
            validate=lambda m, s: calls.append(m) or True,
        )

        stage.validate(action, RawResponse(action="a", params={}), {})

        assert calls == []

    def test_parsed_params_carried(self, stage):
        action = Action(name="a", handler=noop, parameters_schema=QuantityParams, validate=lambda m, s: True)

        result = stage.validate(action, RawResponse(action="a", params={"quantity": "3"}), {})

        assert result.passed
        assert result.params == QuantityParams(quantity=3)
