"""Tests for the step executor and execution loop."""

from __future__ import annotations

from pathlib import Path

import pytest

from abilities.core.execution import ExecutionStatus, StepStatus
from abilities.core.errors import InputError
from abilities.core.executor import create_execution, execute_ability, require_valid_inputs
from abilities.core.prompts import format_execution_result, format_plan


class TestScenarios:
    @pytest.mark.asyncio
    async def test_failed_step_stops_dependents(self, make_ability, ctx):
        ability = make_ability([
            {"id": "a", "type": "script", "run": "exit 1", "validation": {"exit_code": 0}},
            {"id": "b", "type": "script", "run": "echo b", "needs": ["a"]},
            {"id": "c", "type": "script", "run": "echo c", "needs": ["b"]},
        ])
        execution = await execute_ability(ability, {}, ctx)

        assert execution.status == ExecutionStatus.FAILED
        assert [r.step_id for r in execution.completed_steps] == ["a"]
        assert execution.completed_steps[0].status == StepStatus.FAILED
        assert execution.completed_steps[0].error == "Exit code 1, expected 0"
        assert "Exit code 1" in execution.error
        assert [s.id for s in execution.pending_steps] == ["b", "c"]

    @pytest.mark.asyncio
    async def test_input_interpolated_into_script(self, make_ability, ctx):
        ability = make_ability(
            [{"id": "greet", "type": "script", "run": 'echo "Hello {{inputs.name}}"'}],
            inputs={"name": {"type": "string", "required": True}},
        )
        execution = await execute_ability(ability, {"name": "World"}, ctx)

        assert execution.status == ExecutionStatus.COMPLETED
        assert "Hello World" in execution.get_result("greet").output

    @pytest.mark.asyncio
    async def test_missing_required_input_runs_nothing(self, make_ability, ctx):
        ability = make_ability(
            [{"id": "greet", "type": "script", "run": "echo hi"}],
            inputs={"name": {"type": "string", "required": True}},
        )
        execution = await execute_ability(ability, {}, ctx)

        assert execution.status == ExecutionStatus.FAILED
        assert execution.completed_steps == []
        assert execution.error.startswith("Input validation failed:")
        assert "name" in execution.error
        assert execution.completed_at is not None

    def test_require_valid_inputs_carries_issues(self, make_ability):
        ability = make_ability(
            [{"id": "greet", "type": "script", "run": "echo hi"}],
            inputs={
                "name": {"type": "string", "required": True},
                "count": {"type": "number"},
            },
        )

        with pytest.raises(InputError) as exc_info:
            require_valid_inputs(ability, {"count": "three"})

        assert {issue.code for issue in exc_info.value.issues} == {"MISSING_INPUT", "TYPE_MISMATCH"}
        assert str(exc_info.value).startswith("Input validation failed:")
        require_valid_inputs(ability, {"name": "x", "count": 3})

    @pytest.mark.asyncio
    async def test_continue_policy_completes(self, make_ability, ctx):
        ability = make_ability([
            {"id": "fail", "type": "script", "run": "exit 1",
             "validation": {"exit_code": 0}, "on_failure": "continue"},
            {"id": "after", "type": "script", "run": "exit 0"},
        ])
        execution = await execute_ability(ability, {}, ctx)

        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.get_result("fail").status == StepStatus.FAILED
        assert execution.get_result("after").status == StepStatus.COMPLETED


class TestScriptSteps:
    @pytest.mark.asyncio
    async def test_nonzero_exit_without_validation_completes(self, make_ability, ctx):
        ability = make_ability([{"id": "a", "type": "script", "run": "echo partial; exit 3"}])
        execution = await execute_ability(ability, {}, ctx)

        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.get_result("a").output.strip() == "partial"

    @pytest.mark.asyncio
    async def test_missing_command_completes_without_validation(self, make_ability, ctx):
        ability = make_ability([{"id": "a", "type": "script", "run": "no-such-command-xyz"}])
        execution = await execute_ability(ability, {}, ctx)

        result = execution.get_result("a")
        assert execution.status == ExecutionStatus.COMPLETED
        assert result.status == StepStatus.COMPLETED
        assert "not found" in result.output

    @pytest.mark.asyncio
    async def test_missing_command_fails_exit_code_validation(self, make_ability, ctx):
        ability = make_ability([
            {"id": "a", "type": "script", "run": "no-such-command-xyz", "validation": {"exit_code": 0}},
        ])
        execution = await execute_ability(ability, {}, ctx)

        assert execution.status == ExecutionStatus.FAILED
        assert execution.get_result("a").error == "Exit code 127, expected 0"

    @pytest.mark.asyncio
    async def test_stderr_used_when_stdout_empty(self, make_ability, ctx):
        ability = make_ability([{"id": "a", "type": "script", "run": "echo oops >&2"}])
        execution = await execute_ability(ability, {}, ctx)
        assert execution.get_result("a").output.strip() == "oops"

    @pytest.mark.asyncio
    async def test_step_output_feeds_later_step(self, make_ability, ctx):
        ability = make_ability([
            {"id": "version", "type": "script", "run": "echo 1.4.2"},
            {"id": "tag", "type": "script", "run": "echo v{{steps.version.output}}", "needs": ["version"]},
        ])
        execution = await execute_ability(ability, {}, ctx)
        assert execution.get_result("tag").output.strip() == "v1.4.2"

    @pytest.mark.asyncio
    async def test_env_and_cwd(self, make_ability, ctx, tmp_path: Path):
        (tmp_path / "sub").mkdir()
        ability = make_ability(
            [{"id": "a", "type": "script", "run": "echo $GREETING; pwd",
              "cwd": "sub", "env": {"GREETING": "hi {{inputs.who}}"}}],
            inputs={"who": {"type": "string", "default": "there"}},
        )
        execution = await execute_ability(ability, {}, ctx)

        output = execution.get_result("a").output
        assert "hi there" in output
        assert output.strip().endswith("sub")

    @pytest.mark.asyncio
    async def test_output_validation(self, make_ability, ctx):
        ability = make_ability([
            {"id": "a", "type": "script", "run": "echo building",
             "validation": {"stdout_contains": "success"}},
        ])
        execution = await execute_ability(ability, {}, ctx)

        assert execution.status == ExecutionStatus.FAILED
        assert "success" in execution.get_result("a").error

    @pytest.mark.asyncio
    async def test_file_exists_validation(self, make_ability, ctx):
        ability = make_ability([
            {"id": "make", "type": "script", "run": "touch artifact.txt",
             "validation": {"file_exists": "artifact.txt"}},
            {"id": "check", "type": "script", "run": "true",
             "validation": {"file_exists": "missing.txt"}},
        ])
        execution = await execute_ability(ability, {}, ctx)

        assert execution.get_result("make").status == StepStatus.COMPLETED
        assert execution.get_result("check").status == StepStatus.FAILED
        assert "missing.txt" in execution.get_result("check").error

    @pytest.mark.asyncio
    async def test_missing_cwd_fails_step(self, make_ability, ctx):
        ability = make_ability([{"id": "a", "type": "script", "run": "true", "cwd": "does-not-exist"}])
        execution = await execute_ability(ability, {}, ctx)

        assert execution.status == ExecutionStatus.FAILED
        assert execution.get_result("a").status == StepStatus.FAILED

    @pytest.mark.asyncio
    async def test_timeout(self, make_ability, ctx):
        ability = make_ability([{"id": "slow", "type": "script", "run": "sleep 5", "timeout": "200ms"}])
        execution = await execute_ability(ability, {}, ctx)

        result = execution.get_result("slow")
        assert result.status == StepStatus.FAILED
        assert "timed out" in result.error
        assert result.duration_ms < 4000

    @pytest.mark.asyncio
    async def test_ability_timeout_applies_to_steps(self, make_ability, ctx):
        ability = make_ability(
            [{"id": "slow", "type": "script", "run": "sleep 5"}],
            settings={"timeout": 0.2},
        )
        execution = await execute_ability(ability, {}, ctx)
        assert "timed out" in execution.get_result("slow").error


class TestConditions:
    @pytest.mark.asyncio
    async def test_false_condition_skips_step(self, make_ability, ctx):
        ability = make_ability(
            [
                {"id": "deploy", "type": "script", "run": "echo deploying", "when": "inputs.deploy"},
                {"id": "notify", "type": "script", "run": "echo done", "needs": ["deploy"]},
            ],
            inputs={"deploy": {"type": "boolean", "default": False}},
        )
        execution = await execute_ability(ability, {}, ctx)

        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.get_result("deploy").status == StepStatus.SKIPPED
        assert execution.get_result("notify").status == StepStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_condition_on_previous_status(self, make_ability, ctx):
        ability = make_ability([
            {"id": "check", "type": "script", "run": "exit 1",
             "validation": {"exit_code": 0}, "on_failure": "continue"},
            {"id": "fallback", "type": "script", "run": "echo fallback",
             "when": "steps.check.status == 'failed'"},
            {"id": "happy", "type": "script", "run": "echo happy",
             "when": "steps.check.status == 'completed'"},
        ])
        execution = await execute_ability(ability, {}, ctx)

        assert execution.get_result("fallback").status == StepStatus.COMPLETED
        assert execution.get_result("happy").status == StepStatus.SKIPPED


class TestFailurePolicies:
    @pytest.mark.asyncio
    async def test_retry_until_success(self, make_ability, ctx):
        ability = make_ability([
            {"id": "flaky", "type": "script",
             "run": "test -f marker || { touch marker; exit 1; }",
             "validation": {"exit_code": 0}, "on_failure": "retry", "max_retries": 2},
        ])
        execution = await execute_ability(ability, {}, ctx)

        result = execution.get_result("flaky")
        assert execution.status == ExecutionStatus.COMPLETED
        assert result.status == StepStatus.COMPLETED
        assert result.attempts == 2
        assert len(execution.completed_steps) == 1

    @pytest.mark.asyncio
    async def test_retry_exhausted_stops(self, make_ability, ctx):
        ability = make_ability([
            {"id": "broken", "type": "script", "run": "exit 1",
             "validation": {"exit_code": 0}, "on_failure": "retry", "max_retries": 1},
            {"id": "never", "type": "script", "run": "true"},
        ])
        execution = await execute_ability(ability, {}, ctx)

        assert execution.status == ExecutionStatus.FAILED
        assert execution.get_result("broken").attempts == 2
        assert execution.get_result("never") is None

    @pytest.mark.asyncio
    async def test_ability_level_policy(self, make_ability, ctx):
        ability = make_ability(
            [
                {"id": "a", "type": "script", "run": "exit 1", "validation": {"exit_code": 0}},
                {"id": "b", "type": "script", "run": "true"},
            ],
            settings={"on_failure": "continue"},
        )
        execution = await execute_ability(ability, {}, ctx)
        assert execution.status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_ask_continue(self, make_ability, ctx, fake_approval):
        approval = fake_approval(answers=[True])
        ctx.approval = approval
        ability = make_ability([
            {"id": "a", "type": "script", "run": "exit 1",
             "validation": {"exit_code": 0}, "on_failure": "ask"},
            {"id": "b", "type": "script", "run": "true"},
        ])
        execution = await execute_ability(ability, {}, ctx)

        assert execution.status == ExecutionStatus.COMPLETED
        assert approval.prompts == ["Step 'a' failed: Exit code 1, expected 0. Continue?"]

    @pytest.mark.asyncio
    async def test_ask_stop(self, make_ability, ctx, fake_approval):
        ctx.approval = fake_approval(answers=[False])
        ability = make_ability([
            {"id": "a", "type": "script", "run": "exit 1",
             "validation": {"exit_code": 0}, "on_failure": "ask"},
            {"id": "b", "type": "script", "run": "true"},
        ])
        execution = await execute_ability(ability, {}, ctx)

        assert execution.status == ExecutionStatus.FAILED
        assert execution.get_result("b") is None

    @pytest.mark.asyncio
    async def test_ask_without_approval_stops(self, make_ability, ctx):
        ability = make_ability([
            {"id": "a", "type": "script", "run": "exit 1",
             "validation": {"exit_code": 0}, "on_failure": "ask"},
        ])
        execution = await execute_ability(ability, {}, ctx)
        assert execution.status == ExecutionStatus.FAILED


class TestDelegatedSteps:
    @pytest.mark.asyncio
    async def test_agent_step(self, make_ability, ctx, fake_agents):
        agents = fake_agents({"reviewer": "LGTM"})
        ctx.agents = agents
        ability = make_ability(
            [{"id": "review", "type": "agent", "agent": "reviewer", "prompt": "Review {{inputs.pr}}"}],
            inputs={"pr": {"type": "string", "required": True}},
        )
        execution = await execute_ability(ability, {"pr": "#42"}, ctx)

        assert execution.get_result("review").output == "LGTM"
        assert agents.calls == [("reviewer", "Review #42")]

    @pytest.mark.asyncio
    async def test_agent_without_capability(self, make_ability, ctx):
        ability = make_ability([{"id": "review", "type": "agent", "agent": "reviewer", "prompt": "Go"}])
        execution = await execute_ability(ability, {}, ctx)

        assert execution.status == ExecutionStatus.FAILED
        assert "Agent execution not available" in execution.get_result("review").error

    @pytest.mark.asyncio
    async def test_skill_step(self, make_ability, ctx, skills):
        ctx.skills = skills
        ability = make_ability(
            [{"id": "docs", "type": "skill", "skill": "write-docs", "inputs": {"topic": "{{inputs.topic}}"}}],
            inputs={"topic": {"type": "string", "default": "api"}},
        )
        execution = await execute_ability(ability, {}, ctx)

        assert execution.get_result("docs").output == "Skill write-docs loaded"
        assert skills.calls == [("write-docs", {"topic": "api"})]

    @pytest.mark.asyncio
    async def test_skill_without_capability(self, make_ability, ctx):
        ability = make_ability([{"id": "docs", "type": "skill", "skill": "write-docs"}])
        execution = await execute_ability(ability, {}, ctx)
        assert "Skill execution not available" in execution.get_result("docs").error

    @pytest.mark.asyncio
    async def test_approval_granted(self, make_ability, ctx, approval):
        ctx.approval = approval
        ability = make_ability([
            {"id": "confirm", "type": "approval", "prompt": "Deploy {{inputs.env}}?",
             "options": [{"label": "Yes", "value": "yes"}, {"label": "No", "value": "no"}]},
        ], inputs={"env": {"type": "string", "default": "prod"}})
        execution = await execute_ability(ability, {}, ctx)

        assert execution.get_result("confirm").output == "Approved"
        assert approval.prompts == ["Deploy prod?"]
        assert approval.options == [["yes", "no"]]

    @pytest.mark.asyncio
    async def test_approval_rejected(self, make_ability, ctx, fake_approval):
        ctx.approval = fake_approval(default=False)
        ability = make_ability([
            {"id": "confirm", "type": "approval", "prompt": "Deploy?"},
            {"id": "deploy", "type": "script", "run": "true", "needs": ["confirm"]},
        ])
        execution = await execute_ability(ability, {}, ctx)

        result = execution.get_result("confirm")
        assert execution.status == ExecutionStatus.FAILED
        assert result.status == StepStatus.FAILED
        assert result.output == "Rejected"
        assert execution.get_result("deploy") is None

    @pytest.mark.asyncio
    async def test_approval_without_capability(self, make_ability, ctx):
        ability = make_ability([{"id": "confirm", "type": "approval", "prompt": "Deploy?"}])
        execution = await execute_ability(ability, {}, ctx)
        assert execution.get_result("confirm").error == "Approval not available"


class TestWorkflowSteps:
    @pytest.mark.asyncio
    async def test_nested_ability(self, make_ability, ctx, fake_abilities):
        inner = make_ability(
            [{"id": "say", "type": "script", "run": "echo {{inputs.word}}"}],
            name="inner",
            inputs={"word": {"type": "string", "required": True}},
        )
        nested = fake_abilities({"inner": inner}, ctx)
        ctx.abilities = nested
        outer = make_ability([
            {"id": "call", "type": "workflow", "workflow": "inner", "inputs": {"word": "{{inputs.word}}"}},
        ], name="outer", inputs={"word": {"type": "string", "default": "hi"}})

        execution = await execute_ability(outer, {}, ctx)

        assert execution.status == ExecutionStatus.COMPLETED
        assert "completed successfully" in execution.get_result("call").output
        assert nested.executed == ["inner"]

    @pytest.mark.asyncio
    async def test_nested_failure(self, make_ability, ctx, fake_abilities):
        inner = make_ability(
            [{"id": "boom", "type": "script", "run": "exit 2", "validation": {"exit_code": 0}}],
            name="inner",
        )
        ctx.abilities = fake_abilities({"inner": inner}, ctx)
        outer = make_ability([{"id": "call", "type": "workflow", "workflow": "inner"}], name="outer")

        execution = await execute_ability(outer, {}, ctx)

        result = execution.get_result("call")
        assert result.status == StepStatus.FAILED
        assert "Nested ability 'inner' failed" in result.error

    @pytest.mark.asyncio
    async def test_nested_not_found(self, make_ability, ctx, fake_abilities):
        ctx.abilities = fake_abilities({}, ctx)
        outer = make_ability([{"id": "call", "type": "workflow", "workflow": "ghost"}])
        execution = await execute_ability(outer, {}, ctx)
        assert execution.get_result("call").error == "Nested ability 'ghost' not found"

    @pytest.mark.asyncio
    async def test_nesting_depth_limit(self, make_ability, ctx, fake_abilities):
        looping = make_ability([{"id": "again", "type": "workflow", "workflow": "loop"}], name="loop")
        ctx.max_depth = 2
        ctx.abilities = fake_abilities({"loop": looping}, ctx)

        execution = await execute_ability(looping, {}, ctx)

        assert execution.status == ExecutionStatus.FAILED
        assert ctx.abilities.executed == ["loop", "loop"]

    @pytest.mark.asyncio
    async def test_workflow_without_capability(self, make_ability, ctx):
        outer = make_ability([{"id": "call", "type": "workflow", "workflow": "inner"}])
        execution = await execute_ability(outer, {}, ctx)
        assert execution.get_result("call").error == "Workflow execution not available"


class TestCallbacks:
    @pytest.mark.asyncio
    async def test_lifecycle_callbacks(self, make_ability, ctx):
        events = []
        ctx.on_step_start = lambda step: events.append(("start", step.id))
        ctx.on_step_complete = lambda step, result: events.append(("complete", step.id))
        ctx.on_step_fail = lambda step, result: events.append(("fail", step.id))
        ability = make_ability([
            {"id": "ok", "type": "script", "run": "true"},
            {"id": "bad", "type": "script", "run": "exit 1", "validation": {"exit_code": 0}},
        ])
        await execute_ability(ability, {}, ctx)

        assert events == [("start", "ok"), ("complete", "ok"), ("start", "bad"), ("fail", "bad")]

    @pytest.mark.asyncio
    async def test_callback_errors_do_not_break_execution(self, make_ability, ctx):
        def explode(step):
            raise RuntimeError("callback bug")

        ctx.on_step_start = explode
        ability = make_ability([{"id": "ok", "type": "script", "run": "true"}])
        execution = await execute_ability(ability, {}, ctx)
        assert execution.status == ExecutionStatus.COMPLETED


class TestFormatting:
    @pytest.mark.asyncio
    async def test_format_execution_result(self, make_ability, ctx):
        ability = make_ability([
            {"id": "step1", "type": "script", "run": "true"},
            {"id": "step2", "type": "script", "run": "exit 1", "validation": {"exit_code": 0}},
        ], name="release")
        execution = await execute_ability(ability, {}, ctx)
        text = format_execution_result(execution)

        assert "Ability: release" in text
        assert "Status: ❌ Failed" in text
        assert "✅ step1" in text
        assert "❌ step2" in text
        assert "Error: Exit code 1, expected 0" in text
        assert "Duration:" in text

    def test_format_plan(self, make_ability):
        ability = make_ability([
            {"id": "build", "type": "script", "run": "make", "description": "Compile"},
            {"id": "ship", "type": "script", "run": "make ship", "needs": ["build"]},
        ], name="release")
        plan = format_plan(ability, {"env": "prod"})

        assert "## Ability: release" in plan
        assert '- env: "prod"' in plan
        assert "1. **build** [script]" in plan
        assert "   Compile" in plan
        assert "2. **ship** [script] (after: build)" in plan

    def test_create_execution_applies_defaults(self, make_ability):
        ability = make_ability(
            [{"id": "a", "type": "script", "run": "true"}],
            inputs={"env": {"type": "string", "default": "dev"}},
        )
        execution = create_execution(ability, {})

        assert execution.is_running
        assert execution.inputs == {"env": "dev"}
        assert execution.progress == "0/1"
