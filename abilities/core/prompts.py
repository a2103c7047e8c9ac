"""Text templates for controller-facing output."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from abilities.core.execution import ExecutionStatus, StepStatus

if TYPE_CHECKING:
    from abilities.core.execution import AbilityExecution
    from abilities.definitions.models import AbilityDefinition, Step


ACTIVE_ABILITY_TEMPLATE = """
## Active Ability: {name}

**Progress:** {progress} steps completed
""".strip()

STRICT_MODE_NOTICE = (
    "**[STRICT MODE]** You MUST complete this step before proceeding. Other tools are blocked."
)

IDLE_STRICT_NOTICE = (
    "**[STRICT]** You cannot exit or work on other tasks until this ability completes.\n"
    "Use `ability.cancel` if you need to abort."
)

IDLE_NOTICE = "Continue with the current step or use `ability.cancel` to abort."

DETECTED_ABILITY_TEMPLATE = """
## Ability Detected: {name}

{description}

Use `ability.run` tool with name="{name}" to execute.
""".strip()

CONTEXT_HEADER = "## Context from prior steps"

_STATUS_LABELS = {
    ExecutionStatus.RUNNING: "⏳ Running",
    ExecutionStatus.COMPLETED: "✅ Complete",
    ExecutionStatus.FAILED: "❌ Failed",
    ExecutionStatus.CANCELLED: "⛔ Cancelled",
}

_STEP_ICONS = {
    StepStatus.COMPLETED: "✅",
    StepStatus.FAILED: "❌",
    StepStatus.SKIPPED: "⏭️",
}


def step_instructions(step: "Step") -> str:
    """What the controller should do while ``step`` is current."""
    if step.type == "script":
        return "**Action:** Script is executing. Wait for completion."
    if step.type == "agent":
        return f'**Action:** Invoke agent "{step.agent}" with the prompt:\n```\n{step.prompt}\n```'
    if step.type == "skill":
        return f'**Action:** Load and follow skill "{step.skill}".'
    if step.type == "approval":
        return f'**Action:** Request user approval:\n"{step.prompt}"'
    if step.type == "workflow":
        return f'**Action:** Execute nested ability "{step.workflow}".'
    return "**Action:** Complete the current step."


def block_hint(step: "Step") -> str:
    """Why tools are restricted during ``step``."""
    if step.type == "script":
        return "Script steps run deterministically - wait for completion."
    if step.type == "agent":
        return "Only agent invocation tools (task, background_task) allowed."
    if step.type == "approval":
        return "Waiting for user approval - only status/cancel tools allowed."
    if step.type == "skill":
        return "Only skill-loading tools allowed."
    if step.type == "workflow":
        return "Only ability execution tools allowed."
    return "Wait for step completion."


def summarize_output(output: str, head_lines: int = 10, tail_lines: int = 5) -> str:
    """Reduce long output to its first and last lines."""
    lines = output.rstrip("\n").splitlines()
    if len(lines) <= head_lines + tail_lines:
        body = "\n".join(lines)
    else:
        omitted = len(lines) - head_lines - tail_lines
        body = "\n".join(
            lines[:head_lines]
            + [f"... ({omitted} lines omitted) ..."]
            + (lines[-tail_lines:] if tail_lines else [])
        )
    return f"### Output Summary\n{body}"


def truncate_output(output: str, max_chars: int) -> str:
    """Cut output beyond ``max_chars`` and say how much was dropped."""
    if len(output) <= max_chars:
        return output
    dropped = len(output) - max_chars
    return f"{output[:max_chars]}\n... [truncated {dropped} characters]"


def format_prior_context(sections: list[tuple[str, str]]) -> str:
    """Render prior step outputs for embedding into an agent prompt."""
    if not sections:
        return ""
    parts = [CONTEXT_HEADER]
    for step_id, text in sections:
        parts.append(f"\n### Output of step `{step_id}`\n{text}")
    return "\n".join(parts)


def format_plan(ability: "AbilityDefinition", inputs: dict[str, Any]) -> str:
    """Render the plan of an ability before it runs."""
    lines = [f"## Ability: {ability.name}", ability.description, ""]

    if inputs:
        lines.append("### Inputs")
        for key, value in inputs.items():
            lines.append(f"- {key}: {json.dumps(value, default=str)}")
        lines.append("")

    lines.append("### Steps")
    for i, step in enumerate(ability.steps, start=1):
        deps = f" (after: {', '.join(step.needs)})" if step.needs else ""
        lines.append(f"{i}. **{step.id}** [{step.type}]{deps}")
        if step.description:
            lines.append(f"   {step.description}")

    return "\n".join(lines)


def format_execution_result(execution: "AbilityExecution") -> str:
    """Human-readable summary of an execution, successful or not."""
    lines = [
        f"Ability: {execution.ability.name}",
        f"Status: {_STATUS_LABELS[execution.status]}",
    ]

    if execution.error:
        lines.append(f"Error: {execution.error}")

    lines.append("")
    lines.append("Steps:")

    for result in execution.completed_steps:
        icon = _STEP_ICONS[result.status]
        duration = f" ({result.duration_ms / 1000:.1f}s)" if result.duration_ms else ""
        suffix = " (skipped)" if result.status == StepStatus.SKIPPED else ""
        lines.append(f"  {icon} {result.step_id}{duration}{suffix}")
        if result.error:
            lines.append(f"     Error: {result.error}")

    duration_ms = execution.duration_ms
    total = f"{duration_ms / 1000:.1f}s" if duration_ms is not None else "N/A"
    lines.append("")
    lines.append(f"Duration: {total}")

    return "\n".join(lines)
