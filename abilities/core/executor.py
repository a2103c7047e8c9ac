"""Step executor and the sequential execution loop."""

from __future__ import annotations

import asyncio
import os
from datetime import datetime
from typing import TYPE_CHECKING, Any, Mapping

from abilities.core.errors import DefinitionError, InputError, StepExecutionError
from abilities.core.execution import (
    AbilityExecution,
    ExecutionStatus,
    ExecutorContext,
    StepResult,
    StepStatus,
)
from abilities.core.interpolation import evaluate_condition, interpolate, interpolate_mapping
from abilities.core.prompts import (
    format_execution_result,
    format_prior_context,
    summarize_output,
    truncate_output,
)
from abilities.core.resolver import order_steps
from abilities.core.runner import run_script
from abilities.definitions.models import (
    AgentStep,
    ApprovalStep,
    FailurePolicy,
    ScriptStep,
    SkillStep,
    WorkflowStep,
)
from abilities.definitions.validator import apply_input_defaults, validate_inputs
from abilities.utils import get_logger, now_utc, parse_duration

if TYPE_CHECKING:
    from abilities.definitions.models import AbilityDefinition, Step

logger = get_logger(__name__)


class StepExecutor:
    """Execute single steps of an ability.

    Dispatches on the step type and always returns a ``StepResult``; errors
    raised while running a step are converted into failed results.

    Example:
        >>> executor = StepExecutor()
        >>> result = await executor.execute(step, execution, ctx)
    """

    async def execute(
        self,
        step: "Step",
        execution: AbilityExecution,
        ctx: ExecutorContext,
    ) -> StepResult:
        """Run one step under its timeout.

        Args:
            step: Step to run
            execution: Execution the step belongs to
            ctx: Environment and host capabilities

        Returns:
            Completed or failed result for the step
        """
        started_at = now_utc()

        try:
            timeout = parse_duration(step.timeout or execution.ability.settings.timeout)
        except ValueError as e:
            return StepResult.failed(step.id, started_at, str(e))

        try:
            return await asyncio.wait_for(
                self._dispatch(step, execution, ctx, started_at),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Step timed out",
                extra={"execution_id": execution.id, "step_id": step.id, "timeout": timeout},
            )
            return StepResult.failed(step.id, started_at, f"Step timed out after {timeout:g}s")
        except StepExecutionError as e:
            return StepResult.failed(step.id, started_at, str(e), output=e.output)
        except Exception as e:
            logger.error(
                "Step raised an error",
                extra={"execution_id": execution.id, "step_id": step.id, "error": str(e)},
            )
            return StepResult.failed(step.id, started_at, f"{type(e).__name__}: {e}")

    async def _dispatch(
        self,
        step: "Step",
        execution: AbilityExecution,
        ctx: ExecutorContext,
        started_at: datetime,
    ) -> StepResult:
        if step.type == "script":
            return await self._run_script(step, execution, ctx, started_at)
        elif step.type == "agent":
            return await self._run_agent(step, execution, ctx, started_at)
        elif step.type == "skill":
            return await self._run_skill(step, execution, ctx, started_at)
        elif step.type == "approval":
            return await self._run_approval(step, execution, ctx, started_at)
        elif step.type == "workflow":
            return await self._run_workflow(step, execution, ctx, started_at)
        raise StepExecutionError(f"Unknown step type: {step.type}")

    async def _run_script(
        self,
        step: ScriptStep,
        execution: AbilityExecution,
        ctx: ExecutorContext,
        started_at: datetime,
    ) -> StepResult:
        outputs = execution.step_outputs()
        command = interpolate(step.run, execution.inputs, outputs)

        cwd = ctx.cwd
        if step.cwd:
            cwd = os.path.join(ctx.cwd, interpolate(step.cwd, execution.inputs, outputs))

        env = dict(ctx.env)
        env.update(interpolate_mapping(step.env, execution.inputs, outputs))
        env = {key: str(value) for key, value in env.items()}

        def track(process: asyncio.subprocess.Process) -> None:
            execution.process = process

        logger.debug(
            "Running script step",
            extra={"execution_id": execution.id, "step_id": step.id, "cwd": cwd},
        )

        try:
            outcome = await run_script(command, cwd=cwd, env=env, on_spawn=track)
        except OSError as e:
            return StepResult.failed(step.id, started_at, f"Failed to start command: {e}")

        output = outcome.stdout.strip() or outcome.stderr.strip()
        validation = step.validation

        if validation is not None:
            if validation.exit_code is not None and outcome.exit_code != validation.exit_code:
                return StepResult.failed(
                    step.id,
                    started_at,
                    f"Exit code {outcome.exit_code}, expected {validation.exit_code}",
                    output=output,
                )
            if validation.stdout_contains and validation.stdout_contains not in outcome.stdout:
                return StepResult.failed(
                    step.id,
                    started_at,
                    f"stdout does not contain '{validation.stdout_contains}'",
                    output=output,
                )
            if validation.stderr_contains and validation.stderr_contains not in outcome.stderr:
                return StepResult.failed(
                    step.id,
                    started_at,
                    f"stderr does not contain '{validation.stderr_contains}'",
                    output=output,
                )
            if validation.file_exists:
                path = interpolate(validation.file_exists, execution.inputs, outputs)
                if not os.path.exists(os.path.join(cwd, path)):
                    return StepResult.failed(
                        step.id,
                        started_at,
                        f"Expected file does not exist: {path}",
                        output=output,
                    )

        return StepResult.completed(step.id, started_at, output)

    def _build_agent_context(
        self,
        step: AgentStep,
        execution: AbilityExecution,
        ctx: ExecutorContext,
    ) -> str:
        sections: list[tuple[str, str]] = []
        for step_id in dict.fromkeys([*step.needs, *step.context]):
            result = execution.get_result(step_id)
            if result is None or result.status == StepStatus.SKIPPED or not result.output:
                continue

            text = result.output
            producer = execution.ability.get_step(step_id)
            if isinstance(producer, AgentStep) and producer.wants_summary:
                text = summarize_output(text, ctx.summary_head_lines, ctx.summary_tail_lines)
            sections.append((step_id, truncate_output(text, ctx.context_max_chars)))

        return format_prior_context(sections)

    async def _run_agent(
        self,
        step: AgentStep,
        execution: AbilityExecution,
        ctx: ExecutorContext,
        started_at: datetime,
    ) -> StepResult:
        if ctx.agents is None:
            return StepResult.failed(
                step.id, started_at, "Agent execution not available (no delegation capability)"
            )

        prompt = interpolate(step.prompt, execution.inputs, execution.step_outputs())
        prior = self._build_agent_context(step, execution, ctx)
        if prior:
            prompt = f"{prompt}\n\n{prior}"

        logger.info(
            "Delegating to agent",
            extra={"execution_id": execution.id, "step_id": step.id, "agent": step.agent},
        )
        output = await ctx.agents.call(step.agent, prompt)
        return StepResult.completed(step.id, started_at, output)

    async def _run_skill(
        self,
        step: SkillStep,
        execution: AbilityExecution,
        ctx: ExecutorContext,
        started_at: datetime,
    ) -> StepResult:
        if ctx.skills is None:
            return StepResult.failed(step.id, started_at, "Skill execution not available")

        inputs = interpolate_mapping(step.inputs, execution.inputs, execution.step_outputs())
        output = await ctx.skills.load(step.skill, inputs)
        return StepResult.completed(step.id, started_at, output)

    async def _run_approval(
        self,
        step: ApprovalStep,
        execution: AbilityExecution,
        ctx: ExecutorContext,
        started_at: datetime,
    ) -> StepResult:
        if ctx.approval is None:
            return StepResult.failed(step.id, started_at, "Approval not available")

        prompt = interpolate(step.prompt, execution.inputs, execution.step_outputs())
        options = [option.value for option in step.options] or None

        if await ctx.approval.request(prompt, options):
            return StepResult.completed(step.id, started_at, "Approved")
        return StepResult.failed(step.id, started_at, "Approval rejected", output="Rejected")

    async def _run_workflow(
        self,
        step: WorkflowStep,
        execution: AbilityExecution,
        ctx: ExecutorContext,
        started_at: datetime,
    ) -> StepResult:
        if ctx.abilities is None:
            return StepResult.failed(step.id, started_at, "Workflow execution not available")

        nested = ctx.abilities.get(step.workflow)
        if nested is None:
            return StepResult.failed(step.id, started_at, f"Nested ability '{step.workflow}' not found")

        if ctx.depth >= ctx.max_depth:
            return StepResult.failed(
                step.id,
                started_at,
                f"Maximum nesting depth ({ctx.max_depth}) exceeded at '{step.workflow}'",
            )

        inputs = interpolate_mapping(step.inputs, execution.inputs, execution.step_outputs())
        child = await ctx.abilities.execute(nested, inputs)

        if child.status == ExecutionStatus.COMPLETED:
            return StepResult.completed(
                step.id,
                started_at,
                f"Nested ability '{step.workflow}' completed successfully "
                f"({len(child.completed_steps)} steps)",
            )
        return StepResult.failed(
            step.id,
            started_at,
            f"Nested ability '{step.workflow}' failed: {child.error}",
            output=format_execution_result(child),
        )


def _notify(callback: Any, *args: Any) -> None:
    if callback is None:
        return
    try:
        callback(*args)
    except Exception as e:
        logger.warning("Step callback raised", extra={"error": str(e)})


def _failure_policy(step: "Step", ability: "AbilityDefinition") -> FailurePolicy:
    return step.on_failure or ability.settings.on_failure or FailurePolicy.STOP


async def _run_with_retries(
    executor: StepExecutor,
    step: "Step",
    execution: AbilityExecution,
    ctx: ExecutorContext,
    policy: FailurePolicy,
) -> StepResult:
    max_retries = 0
    if policy == FailurePolicy.RETRY:
        max_retries = step.max_retries if step.max_retries is not None else ctx.default_max_retries

    attempt = 0
    while True:
        attempt += 1
        result = await executor.execute(step, execution, ctx)
        if result.status != StepStatus.FAILED or attempt > max_retries or not execution.is_running:
            return result.model_copy(update={"attempts": attempt})
        logger.info(
            "Retrying step",
            extra={
                "execution_id": execution.id,
                "step_id": step.id,
                "attempt": attempt + 1,
                "error": result.error,
            },
        )


async def _should_continue(
    step: "Step",
    result: StepResult,
    policy: FailurePolicy,
    ctx: ExecutorContext,
) -> bool:
    if policy == FailurePolicy.CONTINUE:
        return True
    if policy == FailurePolicy.ASK and ctx.approval is not None:
        return await ctx.approval.request(
            f"Step '{step.id}' failed: {result.error}. Continue?",
            ["continue", "stop"],
        )
    return False


def require_valid_inputs(ability: "AbilityDefinition", inputs: Mapping[str, Any]) -> None:
    """Check inputs against the ability's declared inputs.

    Raises:
        InputError: Carrying every issue found
    """
    issues = validate_inputs(ability, inputs)
    if issues:
        message = "Input validation failed: " + "; ".join(str(issue) for issue in issues)
        raise InputError(message, issues)


def create_execution(
    ability: "AbilityDefinition",
    inputs: Mapping[str, Any] | None = None,
    session_id: str | None = None,
) -> AbilityExecution:
    """Create an execution with defaults applied and inputs validated.

    When the inputs are invalid the returned execution is already terminal
    (failed) and no step will ever run.
    """
    resolved = apply_input_defaults(ability, inputs or {})
    execution = AbilityExecution(
        ability=ability,
        inputs=resolved,
        session_id=session_id,
        pending_steps=list(ability.steps),
    )

    try:
        require_valid_inputs(ability, resolved)
    except InputError as e:
        logger.warning(
            "Input validation failed",
            extra={"ability": ability.name, "execution_id": execution.id, "errors": len(e.issues)},
        )
        execution.finish(ExecutionStatus.FAILED, str(e))

    return execution


async def run_execution(
    execution: AbilityExecution,
    ctx: ExecutorContext,
    step_executor: StepExecutor | None = None,
) -> AbilityExecution:
    """Advance an execution through its steps until it reaches a terminal status.

    Steps run one at a time in dependency order. The loop stops without
    writing anything further as soon as the execution is no longer running,
    which is how cancellation takes effect.

    Args:
        execution: A running execution, usually from ``create_execution``
        ctx: Environment and host capabilities
        step_executor: Executor to use for single steps

    Returns:
        The same execution object, in a terminal status
    """
    if not execution.is_running:
        return execution

    executor = step_executor or StepExecutor()
    ability = execution.ability

    try:
        ordered = order_steps(ability.steps)
    except DefinitionError as e:
        execution.finish(ExecutionStatus.FAILED, str(e))
        return execution

    logger.info(
        "Starting ability",
        extra={"ability": ability.name, "execution_id": execution.id, "steps": len(ordered)},
    )

    try:
        for index, step in enumerate(ordered):
            if not execution.is_running:
                break

            execution.current_step = step
            execution.current_step_index = index
            execution.pending_steps = ordered[index + 1:]

            if step.when:
                try:
                    run_it = evaluate_condition(
                        step.when,
                        execution.inputs,
                        execution.step_outputs(),
                        execution.step_statuses(),
                    )
                except ValueError as e:
                    result = StepResult.failed(step.id, now_utc(), f"Invalid condition: {e}")
                    execution.completed_steps.append(result)
                    _notify(ctx.on_step_fail, step, result)
                    execution.finish(ExecutionStatus.FAILED, f"Step '{step.id}' failed: {result.error}")
                    break
                if not run_it:
                    logger.debug(
                        "Skipping step",
                        extra={"execution_id": execution.id, "step_id": step.id, "when": step.when},
                    )
                    execution.completed_steps.append(
                        StepResult.skipped(step.id, f"Condition not met: {step.when}")
                    )
                    continue

            _notify(ctx.on_step_start, step)
            policy = _failure_policy(step, ability)
            result = await _run_with_retries(executor, step, execution, ctx, policy)

            if not execution.is_running:
                break

            execution.completed_steps.append(result)

            if result.status == StepStatus.COMPLETED:
                _notify(ctx.on_step_complete, step, result)
                continue

            _notify(ctx.on_step_fail, step, result)
            logger.warning(
                "Step failed",
                extra={
                    "execution_id": execution.id,
                    "step_id": step.id,
                    "policy": policy.value,
                    "error": result.error,
                },
            )

            if not await _should_continue(step, result, policy, ctx):
                execution.finish(ExecutionStatus.FAILED, f"Step '{step.id}' failed: {result.error}")
                break

            if not execution.is_running:
                break
        else:
            execution.pending_steps = []

        if execution.is_running:
            execution.finish(ExecutionStatus.COMPLETED)

    except asyncio.CancelledError:
        if execution.is_running:
            execution.finish(ExecutionStatus.CANCELLED, "Cancelled")
        raise
    except Exception as e:
        logger.error(
            "Execution aborted",
            extra={"ability": ability.name, "execution_id": execution.id, "error": str(e)},
        )
        if execution.is_running:
            execution.finish(ExecutionStatus.FAILED, str(e))

    logger.info(
        "Ability finished",
        extra={
            "ability": ability.name,
            "execution_id": execution.id,
            "status": execution.status.value,
            "duration_ms": execution.duration_ms,
        },
    )
    return execution


async def execute_ability(
    ability: "AbilityDefinition",
    inputs: Mapping[str, Any] | None,
    ctx: ExecutorContext,
    session_id: str | None = None,
) -> AbilityExecution:
    """Validate inputs and run an ability to completion."""
    execution = create_execution(ability, inputs, session_id)
    return await run_execution(execution, ctx)
