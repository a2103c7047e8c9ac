"""Parser for the minimal ``when`` condition language."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

REF_RE = re.compile(
    r"^(?:inputs\.(?P<input>[\w-]+)|steps\.(?P<step>[\w-]+)\.(?P<attr>output|status))$"
)
_NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?$")


@dataclass(frozen=True)
class Condition:
    """Parsed form of a ``when`` expression."""
    ref: str
    operator: str  # "truthy", "falsy", "==" or "!="
    literal: Any = None


def _parse_literal(raw: str) -> Any:
    raw = raw.strip()
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "\"'":
        return raw[1:-1]
    lowered = raw.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered in ("null", "none"):
        return None
    if _NUMBER_RE.match(raw):
        return float(raw) if "." in raw else int(raw)
    raise ValueError(f"Invalid literal: {raw}")


def _split_comparison(expression: str) -> tuple[str, str, str] | None:
    """Split at the first ``==`` or ``!=`` that is not inside a quoted literal."""
    quote = None
    for i, char in enumerate(expression):
        if quote:
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif expression[i:i + 2] in ("==", "!="):
            return expression[:i], expression[i:i + 2], expression[i + 2:]
    return None


def parse_condition(expression: str) -> Condition:
    """Parse a condition.

    Supported forms: ``REF``, ``!REF``, ``REF == LITERAL`` and ``REF != LITERAL``
    where REF is ``inputs.NAME``, ``steps.ID.output`` or ``steps.ID.status``.

    Raises:
        ValueError: If the expression is not one of the supported forms.
    """
    expression = expression.strip()
    if not expression:
        raise ValueError("Empty condition")

    split = _split_comparison(expression)
    if split is not None:
        left, operator, right = split
        ref = left.strip()
        if not REF_RE.match(ref):
            raise ValueError(f"Invalid reference in condition: {ref}")
        return Condition(ref=ref, operator=operator, literal=_parse_literal(right))

    negated = expression.startswith("!")
    ref = expression[1:].strip() if negated else expression
    if not REF_RE.match(ref):
        raise ValueError(f"Invalid reference in condition: {ref}")
    return Condition(ref=ref, operator="falsy" if negated else "truthy")
