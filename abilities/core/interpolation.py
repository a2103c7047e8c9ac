"""Placeholder interpolation and ``when`` conditions.

Two placeholder forms are understood:

- ``{{inputs.NAME}}`` resolves to a resolved input value
- ``{{steps.STEP_ID.output}}`` resolves to a finished step's output

Placeholders that cannot be resolved are left in the text unchanged.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

from abilities.definitions.conditions import REF_RE, parse_condition

PLACEHOLDER_RE = re.compile(
    r"\{\{\s*(?:inputs\.(?P<input>[\w-]+)|steps\.(?P<step>[\w-]+)\.output)\s*\}\}"
)


def render_value(value: Any) -> str:
    """Render an input value for substitution into text."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


def interpolate(
    text: str,
    inputs: Mapping[str, Any],
    step_outputs: Mapping[str, str | None] | None = None,
) -> str:
    """Substitute placeholders in ``text``.

    Args:
        text: Template text
        inputs: Resolved input values
        step_outputs: Outputs of finished steps keyed by step id

    Returns:
        Text with every resolvable placeholder replaced
    """
    step_outputs = step_outputs or {}

    def replacer(match: re.Match) -> str:
        input_name = match.group("input")
        if input_name is not None:
            if input_name in inputs:
                return render_value(inputs[input_name])
            return match.group(0)

        step_id = match.group("step")
        output = step_outputs.get(step_id)
        if output is None:
            return match.group(0)
        return output.strip()

    return PLACEHOLDER_RE.sub(replacer, text)


def interpolate_mapping(
    data: Mapping[str, Any],
    inputs: Mapping[str, Any],
    step_outputs: Mapping[str, str | None] | None = None,
) -> dict[str, Any]:
    """Interpolate every string found inside a nested mapping.

    A value that is exactly one ``{{inputs.NAME}}`` placeholder keeps the
    input's native type instead of being rendered to text.
    """
    def convert(value: Any) -> Any:
        if isinstance(value, str):
            match = PLACEHOLDER_RE.fullmatch(value.strip())
            if match and match.group("input") in inputs:
                return inputs[match.group("input")]
            return interpolate(value, inputs, step_outputs)
        if isinstance(value, Mapping):
            return {k: convert(v) for k, v in value.items()}
        if isinstance(value, list):
            return [convert(v) for v in value]
        return value

    return {key: convert(value) for key, value in data.items()}


def _resolve_ref(
    ref: str,
    inputs: Mapping[str, Any],
    step_outputs: Mapping[str, str | None],
    step_statuses: Mapping[str, str],
) -> Any:
    match = REF_RE.match(ref)
    if match is None:
        return None
    if match.group("input") is not None:
        return inputs.get(match.group("input"))
    step_id = match.group("step")
    if match.group("attr") == "status":
        return step_statuses.get(step_id)
    output = step_outputs.get(step_id)
    return output.strip() if isinstance(output, str) else output


def evaluate_condition(
    expression: str,
    inputs: Mapping[str, Any],
    step_outputs: Mapping[str, str | None] | None = None,
    step_statuses: Mapping[str, str] | None = None,
) -> bool:
    """Evaluate a ``when`` expression against the current execution state."""
    condition = parse_condition(expression)
    value = _resolve_ref(condition.ref, inputs, step_outputs or {}, step_statuses or {})

    if condition.operator == "truthy":
        return bool(value)
    if condition.operator == "falsy":
        return not value

    literal = condition.literal
    if isinstance(literal, str):
        equal = value is not None and render_value(value) == literal
    else:
        equal = value == literal
    return equal if condition.operator == "==" else not equal
