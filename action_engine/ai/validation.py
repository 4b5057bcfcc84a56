"""
action_engine/ai/validation.py

Validator stage - runs an action's gating predicate against conversation state.

Validation never raises into the dispatch loop: schema errors and
exceptions from the predicate become a failed ValidationResult with a
"validation error: <cause>" reason. A failed result short-circuits before
admission and is not retried.
"""
from types import MappingProxyType
from typing import Any, Mapping, Optional
import asyncio
import inspect
import logging

from pydantic import ValidationError

from action_engine.ai.actions import Action
from action_engine.ai.context import RawResponse
from action_engine.ai.result import ValidationResult

logger = logging.getLogger(__name__)

REJECTED_REASON = "validation rejected"


def _format_pydantic_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item.get("loc", ())) or "params"
        parts.append(f"{loc}: {item.get('msg', 'invalid')}")
    return "; ".join(parts) or str(error)


async def _await(awaitable: Any) -> Any:
    return await awaitable


def _read_only(state: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    # Shallow: top-level keys cannot be rebound, nested values are the caller's.
    if state is None:
        return MappingProxyType({})
    if isinstance(state, dict):
        return MappingProxyType(state)
    return state


class ValidatorStage:
    """Gate between resolution and admission."""

    def validate(
        self,
        action: Action,
        message: RawResponse,
        state: Optional[Mapping[str, Any]] = None,
    ) -> ValidationResult:
        """
        Validate a candidate for an action.

        Order:
        1. Parse message.params with the action's parameters_schema, if any
        2. Call the action's validate predicate, if any

        Returns:
            ValidationResult; parsed params are carried on success
        """
        params = None
        try:
            if action.parameters_schema is not None:
                params = action.parameters_schema.model_validate(message.params)

            if action.validate is None:
                return ValidationResult.ok(params)

            verdict = action.validate(message, _read_only(state))
            if inspect.isawaitable(verdict):
                verdict = asyncio.run(_await(verdict))
        except ValidationError as e:
            return ValidationResult.fail(f"validation error: {_format_pydantic_error(e)}")
        except Exception as e:
            logger.debug(f"Validator for '{action.name}' raised: {e!r}")
            return ValidationResult.fail(f"validation error: {e}")

        return self._coerce(verdict, params)

    @staticmethod
    def _coerce(verdict: Any, params: Any) -> ValidationResult:
        if isinstance(verdict, ValidationResult):
            if verdict.passed and verdict.params is None and params is not None:
                return ValidationResult.ok(params)
            return verdict
        if verdict:
            return ValidationResult.ok(params)
        return ValidationResult.fail(REJECTED_REASON)


__all__ = ["ValidatorStage", "REJECTED_REASON"]
