"""Exception hierarchy for the abilities engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from abilities.definitions.validator import ValidationIssue


class AbilityError(Exception):
    """Base class for all engine errors."""


class DefinitionError(AbilityError):
    """An ability definition is malformed and must not be executed."""

    def __init__(self, message: str, issues: "list[ValidationIssue] | None" = None):
        super().__init__(message)
        self.issues = list(issues or [])


class InputError(AbilityError):
    """Supplied input values do not satisfy the declared input schema."""

    def __init__(self, message: str, issues: "list[ValidationIssue] | None" = None):
        super().__init__(message)
        self.issues = list(issues or [])


class StepExecutionError(AbilityError):
    """A single step could not complete.

    Raised inside step handlers and converted into a failed ``StepResult``;
    it never escapes the executor.
    """

    def __init__(self, message: str, output: str | None = None):
        super().__init__(message)
        self.output = output


class EnforcementError(AbilityError):
    """A tool call was blocked by the enforcement gate."""

    def __init__(self, message: str, tool: str, step_id: str | None = None, step_type: str | None = None):
        super().__init__(message)
        self.tool = tool
        self.step_id = step_id
        self.step_type = step_type


class LifecycleError(AbilityError):
    """An execution could not be started or changed in its current state."""
