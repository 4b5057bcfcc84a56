"""
action_engine/ai/normalizer.py

Canonicalizes raw action tokens into registry keys.

LLM output names actions in free text ("TAKE_ORDER", " take_order", "TakeOrder").
Only case, underscores and surrounding whitespace are folded. Other
punctuation is kept, so "take-order" and "takeorder" stay distinct keys.
"""
from typing import Any


def normalize(raw: Any) -> str:
    """
    Normalize a raw action token.

    Lowercases, removes every underscore and trims surrounding whitespace.
    Total: None normalizes to the empty key, other non-strings are
    stringified first.

    Examples:
        >>> normalize("TAKE_ORDER")
        'takeorder'
        >>> normalize("  Buy_Order ")
        'buyorder'
        >>> normalize(None)
        ''
    """
    if raw is None:
        return ""
    if not isinstance(raw, str):
        raw = str(raw)
    return raw.lower().replace("_", "").strip()


__all__ = ["normalize"]
