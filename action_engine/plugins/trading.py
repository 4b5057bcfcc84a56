"""
action_engine/plugins/trading.py

take_order - records a buy order for a ticker symbol in the actor's state.
"""
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional
import re
import uuid

from pydantic import BaseModel, Field

from action_engine.ai.actions import Action
from action_engine.ai.context import AppliedChange, HandlerContext, RawResponse
from action_engine.ai.result import ValidationResult
from action_engine.errors import TerminalExecutionFailure

ORDERS_SCOPE = "orders"
NO_TICKER_REASON = "No valid ticker symbol found"

# Explicit ticker param: 1-5 letters, optional leading "$"; in free text only cashtags count.
TICKER_PARAM_PATTERN = re.compile(r"^\$?([A-Za-z]{1,5})$")
CASHTAG_PATTERN = re.compile(r"\$([A-Za-z]{1,5})\b")


class TakeOrderParams(BaseModel):
    """Parameters for take_order"""
    ticker: Optional[str] = Field(None, description="Ticker symbol, e.g. ABC or $ABC")
    quantity: int = Field(default=1, gt=0, description="Number of units")
    price: Optional[float] = Field(None, gt=0, description="Limit price per unit")


def extract_ticker(message: RawResponse) -> Optional[str]:
    """Ticker from params.ticker, else the first cashtag in the message text."""
    raw = message.params.get("ticker") if message.params else None
    if isinstance(raw, str):
        match = TICKER_PARAM_PATTERN.match(raw.strip())
        return match.group(1).upper() if match else None

    if message.text:
        match = CASHTAG_PATTERN.search(message.text)
        if match:
            return match.group(1).upper()
    return None


def validate_take_order(message: RawResponse, state: Mapping[str, Any]) -> ValidationResult:
    if extract_ticker(message) is None:
        return ValidationResult.fail(NO_TICKER_REASON)
    return ValidationResult.ok()


def handle_take_order(message: RawResponse, state: Mapping[str, Any], context: HandlerContext) -> dict:
    store = context.state_store
    if store is None:
        raise TerminalExecutionFailure("take_order requires a state store", context.action_name)

    params = context.params or TakeOrderParams.model_validate(message.params)
    order = {
        "order_id": uuid.uuid4().hex,
        "ticker": extract_ticker(message),
        "quantity": params.quantity,
        "price": params.price,
        "actor_id": context.actor_id,
        "attempt_token": context.attempt_token,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }

    orders = store.get(ORDERS_SCOPE, context.actor_id) or []
    orders.append(order)
    store.set(ORDERS_SCOPE, context.actor_id, orders)
    context.record_change("order_placed", order_id=order["order_id"])

    return order


def rollback_take_order(changes: List[AppliedChange], context: HandlerContext) -> None:
    store = context.state_store
    placed = {c.data["order_id"] for c in changes if c.description == "order_placed"}
    if store is None or not placed:
        return
    orders = store.get(ORDERS_SCOPE, context.actor_id) or []
    store.set(ORDERS_SCOPE, context.actor_id, [o for o in orders if o.get("order_id") not in placed])


take_order = Action(
    name="take_order",
    similes={"BUY_ORDER", "PLACE_ORDER"},
    description="Record a buy order for a ticker symbol mentioned by the user",
    examples=(
        {"user": "buy 10 $ABC", "action": "TAKE_ORDER"},
        {"user": "place an order for $XYZ at 12.5", "action": "BUY_ORDER"},
    ),
    validate=validate_take_order,
    handler=handle_take_order,
    rollback=rollback_take_order,
    parameters_schema=TakeOrderParams,
    category="mutation",
)


__all__ = [
    "ORDERS_SCOPE",
    "NO_TICKER_REASON",
    "TakeOrderParams",
    "extract_ticker",
    "take_order",
]
