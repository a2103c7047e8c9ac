"""Structural and semantic validation of ability definitions and inputs."""

from __future__ import annotations

import re
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError

from abilities.definitions.conditions import parse_condition
from abilities.definitions.models import AbilityDefinition, InputType

SCHEMA_ERROR = "SCHEMA_ERROR"
DUPLICATE_ID = "DUPLICATE_ID"
MISSING_DEPENDENCY = "MISSING_DEPENDENCY"
CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
INVALID_REGEX = "INVALID_REGEX"
INVALID_CONDITION = "INVALID_CONDITION"

MISSING_INPUT = "MISSING_INPUT"
TYPE_MISMATCH = "TYPE_MISMATCH"
PATTERN_MISMATCH = "PATTERN_MISMATCH"
ENUM_MISMATCH = "ENUM_MISMATCH"
MIN_LENGTH = "MIN_LENGTH"
MAX_LENGTH = "MAX_LENGTH"
MIN_VALUE = "MIN_VALUE"
MAX_VALUE = "MAX_VALUE"


class ValidationIssue(BaseModel):
    """A single validation problem."""
    path: str
    message: str
    code: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


class ValidationResult(BaseModel):
    """Outcome of validating an ability definition."""
    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    ability: AbilityDefinition | None = None

    @property
    def codes(self) -> set[str]:
        return {e.code for e in self.errors}


def _schema_issues(exc: ValidationError) -> list[ValidationIssue]:
    return [
        ValidationIssue(
            path=".".join(str(part) for part in err["loc"]),
            message=err["msg"],
            code=SCHEMA_ERROR,
        )
        for err in exc.errors()
    ]


def _duplicate_ids(ability: AbilityDefinition) -> list[ValidationIssue]:
    issues = []
    seen: set[str] = set()
    for step in ability.steps:
        if step.id in seen:
            issues.append(ValidationIssue(
                path=f"steps.{step.id}",
                message=f"Duplicate step ID '{step.id}'",
                code=DUPLICATE_ID,
            ))
        seen.add(step.id)
    return issues


def _missing_dependencies(ability: AbilityDefinition) -> list[ValidationIssue]:
    issues = []
    step_ids = {step.id for step in ability.steps}
    for step in ability.steps:
        for dep in step.needs:
            if dep not in step_ids:
                issues.append(ValidationIssue(
                    path=f"steps.{step.id}.needs",
                    message=f"Dependency '{dep}' does not exist",
                    code=MISSING_DEPENDENCY,
                ))
    return issues


def find_cycle(needs: Mapping[str, list[str]]) -> list[str] | None:
    """Find a dependency cycle by depth-first search.

    Args:
        needs: Step id -> ids it depends on, in declaration order

    Returns:
        The cycle as a path that starts and ends on the same id, or None
    """
    visited: set[str] = set()
    on_stack: set[str] = set()
    path: list[str] = []

    def dfs(node: str) -> list[str] | None:
        if node in on_stack:
            start = path.index(node)
            return path[start:] + [node]
        if node in visited:
            return None

        visited.add(node)
        on_stack.add(node)
        path.append(node)

        for dep in needs.get(node, []):
            cycle = dfs(dep)
            if cycle:
                return cycle

        path.pop()
        on_stack.discard(node)
        return None

    for node in needs:
        cycle = dfs(node)
        if cycle:
            return cycle
    return None


def _circular_dependencies(ability: AbilityDefinition) -> list[ValidationIssue]:
    needs: dict[str, list[str]] = {}
    for step in ability.steps:
        needs.setdefault(step.id, list(step.needs))

    cycle = find_cycle(needs)
    if cycle is None:
        return []
    return [ValidationIssue(
        path="steps",
        message=f"Circular dependency detected: {' → '.join(cycle)}",
        code=CIRCULAR_DEPENDENCY,
    )]


def _compiles(pattern: str) -> bool:
    try:
        re.compile(pattern)
    except re.error:
        return False
    return True


def _invalid_patterns(ability: AbilityDefinition) -> list[ValidationIssue]:
    issues = []
    if ability.triggers:
        for pattern in ability.triggers.patterns:
            if not _compiles(pattern):
                issues.append(ValidationIssue(
                    path="triggers.patterns",
                    message=f"Invalid regex pattern: {pattern}",
                    code=INVALID_REGEX,
                ))

    for name, definition in ability.inputs.items():
        if definition.pattern and not _compiles(definition.pattern):
            issues.append(ValidationIssue(
                path=f"inputs.{name}.pattern",
                message=f"Invalid regex pattern: {definition.pattern}",
                code=INVALID_REGEX,
            ))
    return issues


def _invalid_conditions(ability: AbilityDefinition) -> list[ValidationIssue]:
    issues = []
    for step in ability.steps:
        if step.when is None:
            continue
        try:
            parse_condition(step.when)
        except ValueError as e:
            issues.append(ValidationIssue(
                path=f"steps.{step.id}.when",
                message=f"Invalid condition '{step.when}': {e}",
                code=INVALID_CONDITION,
            ))
    return issues


def validate_ability(data: AbilityDefinition | Mapping[str, Any]) -> ValidationResult:
    """Validate an ability definition.

    Schema problems are reported on their own; semantic checks only run on a
    definition whose shape is valid. All semantic problems are reported at once.

    Args:
        data: A parsed definition mapping or an already-built definition

    Returns:
        ValidationResult carrying the built definition when valid
    """
    if isinstance(data, AbilityDefinition):
        ability = data
    else:
        try:
            ability = AbilityDefinition.model_validate(data)
        except ValidationError as e:
            return ValidationResult(valid=False, errors=_schema_issues(e))

    errors: list[ValidationIssue] = []
    errors.extend(_duplicate_ids(ability))
    errors.extend(_missing_dependencies(ability))
    errors.extend(_circular_dependencies(ability))
    errors.extend(_invalid_patterns(ability))
    errors.extend(_invalid_conditions(ability))

    return ValidationResult(
        valid=not errors,
        errors=errors,
        ability=ability if not errors else None,
    )


def _type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    if value is None:
        return "null"
    return type(value).__name__


def validate_inputs(ability: AbilityDefinition, inputs: Mapping[str, Any]) -> list[ValidationIssue]:
    """Check supplied input values against the ability's declared inputs.

    Args:
        ability: Ability whose input schema applies
        inputs: Values supplied by the caller

    Returns:
        Every problem found; an empty list means the inputs are acceptable
    """
    errors: list[ValidationIssue] = []

    for name, definition in ability.inputs.items():
        path = f"inputs.{name}"
        value = inputs.get(name)

        if value is None:
            if definition.required and not definition.has_default:
                errors.append(ValidationIssue(
                    path=path,
                    message=f"Required input '{name}' is missing",
                    code=MISSING_INPUT,
                ))
            continue

        actual = _type_name(value)
        if actual != definition.type.value:
            errors.append(ValidationIssue(
                path=path,
                message=f"Expected {definition.type.value}, got {actual}",
                code=TYPE_MISMATCH,
            ))
            continue

        if definition.type == InputType.STRING:
            if definition.pattern and _compiles(definition.pattern) and not re.search(definition.pattern, value):
                errors.append(ValidationIssue(
                    path=path,
                    message=f"Value '{value}' does not match pattern '{definition.pattern}'",
                    code=PATTERN_MISMATCH,
                ))
            if definition.enum and value not in definition.enum:
                errors.append(ValidationIssue(
                    path=path,
                    message=f"Value '{value}' must be one of: {', '.join(definition.enum)}",
                    code=ENUM_MISMATCH,
                ))
            if definition.min_length is not None and len(value) < definition.min_length:
                errors.append(ValidationIssue(
                    path=path,
                    message=f"Value must be at least {definition.min_length} characters",
                    code=MIN_LENGTH,
                ))
            if definition.max_length is not None and len(value) > definition.max_length:
                errors.append(ValidationIssue(
                    path=path,
                    message=f"Value must be at most {definition.max_length} characters",
                    code=MAX_LENGTH,
                ))

        if definition.type == InputType.NUMBER:
            if definition.min is not None and value < definition.min:
                errors.append(ValidationIssue(
                    path=path,
                    message=f"Value must be at least {definition.min:g}",
                    code=MIN_VALUE,
                ))
            if definition.max is not None and value > definition.max:
                errors.append(ValidationIssue(
                    path=path,
                    message=f"Value must be at most {definition.max:g}",
                    code=MAX_VALUE,
                ))

    return errors


def apply_input_defaults(ability: AbilityDefinition, inputs: Mapping[str, Any]) -> dict[str, Any]:
    """Return supplied inputs with declared defaults filled in."""
    resolved = dict(inputs)
    for name, definition in ability.inputs.items():
        if resolved.get(name) is None and definition.has_default:
            resolved[name] = definition.default
    return resolved
