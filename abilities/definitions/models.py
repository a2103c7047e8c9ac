"""Data models for ability definitions."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

STEP_ID_PATTERN = r"^[a-z0-9-]+$"
ABILITY_NAME_PATTERN = r"^[a-z0-9-/]+$"


class InputType(str, Enum):
    """Value type of a declared input."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class StepType(str, Enum):
    """Closed set of step kinds."""
    SCRIPT = "script"
    AGENT = "agent"
    SKILL = "skill"
    APPROVAL = "approval"
    WORKFLOW = "workflow"


class FailurePolicy(str, Enum):
    """What the engine does after a step fails."""
    STOP = "stop"
    CONTINUE = "continue"
    RETRY = "retry"
    ASK = "ask"


class EnforcementMode(str, Enum):
    """How strictly tool usage is restricted while a step runs."""
    STRICT = "strict"
    NORMAL = "normal"
    LOOSE = "loose"


class InputDefinition(BaseModel):
    """Declared input of an ability."""
    model_config = ConfigDict(populate_by_name=True)

    type: InputType
    required: bool = False
    default: Any = None
    description: str | None = None
    pattern: str | None = None
    enum: list[str] | None = None
    min_length: int | None = Field(default=None, alias="minLength")
    max_length: int | None = Field(default=None, alias="maxLength")
    min: float | None = None
    max: float | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not None


class ScriptValidation(BaseModel):
    """Post-run checks for a script step."""
    exit_code: int | None = None
    stdout_contains: str | None = None
    stderr_contains: str | None = None
    file_exists: str | None = None


class BaseStep(BaseModel):
    """Fields shared by every step type."""
    id: str = Field(pattern=STEP_ID_PATTERN)
    description: str | None = None
    needs: list[str] = Field(default_factory=list)
    when: str | None = None
    timeout: str | float | None = None
    on_failure: FailurePolicy | None = None
    max_retries: int | None = Field(default=None, ge=0)


class ScriptStep(BaseStep):
    type: Literal["script"] = "script"
    run: str = Field(min_length=1)
    cwd: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    validation: ScriptValidation | None = None


class AgentStep(BaseStep):
    type: Literal["agent"] = "agent"
    agent: str = Field(min_length=1)
    prompt: str = Field(min_length=1)
    context: list[str] = Field(default_factory=list)
    summarize: bool | str = False

    @property
    def wants_summary(self) -> bool:
        if isinstance(self.summarize, str):
            return bool(self.summarize.strip())
        return self.summarize


class SkillStep(BaseStep):
    type: Literal["skill"] = "skill"
    skill: str = Field(min_length=1)
    inputs: dict[str, Any] = Field(default_factory=dict)


class ApprovalOption(BaseModel):
    label: str
    value: str


class ApprovalStep(BaseStep):
    type: Literal["approval"] = "approval"
    prompt: str = Field(min_length=1)
    options: list[ApprovalOption] = Field(default_factory=list)


class WorkflowStep(BaseStep):
    type: Literal["workflow"] = "workflow"
    workflow: str = Field(min_length=1)
    inputs: dict[str, Any] = Field(default_factory=dict)


Step = Annotated[
    Union[ScriptStep, AgentStep, SkillStep, ApprovalStep, WorkflowStep],
    Field(discriminator="type"),
]


class Triggers(BaseModel):
    """Keyword and regex triggers used to suggest an ability."""
    keywords: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)


class Settings(BaseModel):
    """Per-ability execution settings."""
    timeout: str | float | None = None
    parallel: bool = False
    enforcement: EnforcementMode | None = None
    approval: Literal["plan", "checkpoint", "none"] | None = None
    on_failure: FailurePolicy | None = None


class AbilityDefinition(BaseModel):
    """A declarative, step-based workflow.

    Instances are frozen once validated; executions hold a reference to the
    definition they were started from.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(pattern=ABILITY_NAME_PATTERN)
    description: str = Field(min_length=1)
    version: str | None = None
    triggers: Triggers | None = None
    inputs: dict[str, InputDefinition] = Field(default_factory=dict)
    steps: list[Step] = Field(min_length=1)
    settings: Settings = Field(default_factory=Settings)
    compatible_agents: list[str] = Field(default_factory=list)
    exclusive_agent: str | None = None
    source_path: Path | None = Field(default=None, exclude=True)

    def get_step(self, step_id: str) -> Step | None:
        """Look up a step by id."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


class AbilitySource(str, Enum):
    """Where a loaded ability came from."""
    PROJECT = "project"
    GLOBAL = "global"
    INLINE = "inline"


class LoadedAbility(BaseModel):
    """A validated ability together with its origin."""
    ability: AbilityDefinition
    source: AbilitySource = AbilitySource.INLINE
    file_path: Path | None = None


class AbilityListItem(BaseModel):
    """Summary row returned by list operations."""
    name: str
    description: str
    source: AbilitySource
    triggers: list[str] = Field(default_factory=list)
    input_count: int = 0
    step_count: int = 0
