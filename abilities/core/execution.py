"""Runtime state of ability executions."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel

from abilities.utils import elapsed_ms, generate_execution_id, now_utc

if TYPE_CHECKING:
    from abilities.core.capabilities import (
        AbilityCapability,
        AgentCapability,
        ApprovalCapability,
        SkillCapability,
    )
    from abilities.definitions.models import AbilityDefinition, Step


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StepStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepResult(BaseModel):
    """Outcome of one step, recorded exactly once per step."""

    step_id: str
    status: StepStatus
    output: str | None = None
    error: str | None = None
    started_at: datetime
    completed_at: datetime
    duration_ms: int = 0
    attempts: int = 1

    @classmethod
    def completed(cls, step_id: str, started_at: datetime, output: str | None = None) -> "StepResult":
        end = now_utc()
        return cls(
            step_id=step_id,
            status=StepStatus.COMPLETED,
            output=output,
            started_at=started_at,
            completed_at=end,
            duration_ms=elapsed_ms(started_at, end),
        )

    @classmethod
    def failed(
        cls,
        step_id: str,
        started_at: datetime,
        error: str,
        output: str | None = None,
    ) -> "StepResult":
        end = now_utc()
        return cls(
            step_id=step_id,
            status=StepStatus.FAILED,
            output=output,
            error=error,
            started_at=started_at,
            completed_at=end,
            duration_ms=elapsed_ms(started_at, end),
        )

    @classmethod
    def skipped(cls, step_id: str, reason: str | None = None) -> "StepResult":
        now = now_utc()
        return cls(
            step_id=step_id,
            status=StepStatus.SKIPPED,
            output=reason,
            started_at=now,
            completed_at=now,
            attempts=0,
        )


@dataclass
class AbilityExecution:
    """One instantiation of an ability with concrete inputs.

    Owned by the ``ExecutionManager`` and advanced only by the executor loop.
    Once ``status`` leaves RUNNING the engine does not write to it again.
    """

    ability: "AbilityDefinition"
    inputs: dict[str, Any]
    id: str = field(default_factory=generate_execution_id)
    status: ExecutionStatus = ExecutionStatus.RUNNING
    current_step: "Step | None" = None
    current_step_index: int = -1
    completed_steps: list[StepResult] = field(default_factory=list)
    pending_steps: list["Step"] = field(default_factory=list)
    started_at: datetime = field(default_factory=now_utc)
    completed_at: datetime | None = None
    error: str | None = None
    session_id: str | None = None
    process: asyncio.subprocess.Process | None = field(default=None, repr=False, compare=False)

    @property
    def is_running(self) -> bool:
        return self.status == ExecutionStatus.RUNNING

    @property
    def total_steps(self) -> int:
        return len(self.ability.steps)

    @property
    def progress(self) -> str:
        return f"{len(self.completed_steps)}/{self.total_steps}"

    @property
    def duration_ms(self) -> int | None:
        if self.completed_at is None:
            return None
        return elapsed_ms(self.started_at, self.completed_at)

    def get_result(self, step_id: str) -> StepResult | None:
        for result in self.completed_steps:
            if result.step_id == step_id:
                return result
        return None

    def step_outputs(self) -> dict[str, str | None]:
        return {r.step_id: r.output for r in self.completed_steps if r.status != StepStatus.SKIPPED}

    def step_statuses(self) -> dict[str, str]:
        return {r.step_id: r.status.value for r in self.completed_steps}

    def finish(self, status: ExecutionStatus, error: str | None = None) -> None:
        """Move to a terminal status."""
        self.status = status
        if error is not None:
            self.error = error
        self.current_step = None
        self.process = None
        self.completed_at = now_utc()

    def to_summary(self) -> dict[str, Any]:
        """JSON-friendly summary used by the tool surface."""
        return {
            "id": self.id,
            "ability": self.ability.name,
            "status": self.status.value,
            "current_step": self.current_step.id if self.current_step else None,
            "progress": self.progress,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "steps": [
                {
                    "id": r.step_id,
                    "status": r.status.value,
                    "duration_ms": r.duration_ms,
                    "output": r.output,
                    "error": r.error,
                }
                for r in self.completed_steps
            ],
        }


StepCallback = Callable[["Step"], None]
StepResultCallback = Callable[["Step", StepResult], None]


@dataclass
class ExecutorContext:
    """Environment and host capabilities handed to the executor."""

    cwd: str = field(default_factory=os.getcwd)
    env: dict[str, str] = field(default_factory=dict)
    agents: "AgentCapability | None" = None
    skills: "SkillCapability | None" = None
    approval: "ApprovalCapability | None" = None
    abilities: "AbilityCapability | None" = None
    on_step_start: StepCallback | None = None
    on_step_complete: StepResultCallback | None = None
    on_step_fail: StepResultCallback | None = None
    context_max_chars: int = 8000
    summary_head_lines: int = 10
    summary_tail_lines: int = 5
    default_max_retries: int = 2
    max_depth: int = 5
    depth: int = 0

    def nested(self) -> "ExecutorContext":
        """Context for a nested workflow, one level deeper."""
        return replace(self, depth=self.depth + 1)
