"""Ability definitions: models, validation and loading."""

from abilities.definitions.loader import AbilityLoader, list_abilities, resolve_ability_name
from abilities.definitions.models import (
    AbilityDefinition,
    AbilityListItem,
    AbilitySource,
    AgentStep,
    ApprovalStep,
    EnforcementMode,
    FailurePolicy,
    InputDefinition,
    InputType,
    LoadedAbility,
    ScriptStep,
    SkillStep,
    Step,
    StepType,
    WorkflowStep,
)
from abilities.definitions.validator import (
    ValidationIssue,
    ValidationResult,
    apply_input_defaults,
    validate_ability,
    validate_inputs,
)

__all__ = [
    "AbilityDefinition",
    "AbilityListItem",
    "AbilityLoader",
    "AbilitySource",
    "AgentStep",
    "ApprovalStep",
    "EnforcementMode",
    "FailurePolicy",
    "InputDefinition",
    "InputType",
    "LoadedAbility",
    "ScriptStep",
    "SkillStep",
    "Step",
    "StepType",
    "ValidationIssue",
    "ValidationResult",
    "WorkflowStep",
    "apply_input_defaults",
    "list_abilities",
    "resolve_ability_name",
    "validate_ability",
    "validate_inputs",
]
