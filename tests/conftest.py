"""Shared fixtures: ability builders and fake host capabilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from abilities.core.execution import AbilityExecution, ExecutorContext
from abilities.core.executor import execute_ability
from abilities.definitions.models import AbilityDefinition


class FakeAgents:
    """Records agent calls and answers with canned replies."""

    def __init__(self, replies: dict[str, str] | None = None):
        self.replies = replies or {}
        self.calls: list[tuple[str, str]] = []

    async def call(self, agent: str, prompt: str) -> str:
        self.calls.append((agent, prompt))
        return self.replies.get(agent, f"{agent} done")


class FakeSkills:
    def __init__(self):
        self.calls: list[tuple[str, dict[str, Any] | None]] = []

    async def load(self, name: str, inputs: dict[str, Any] | None = None) -> str:
        self.calls.append((name, inputs))
        return f"Skill {name} loaded"


class FakeApproval:
    """Answers approval requests from a fixed list, then with ``default``."""

    def __init__(self, answers: list[bool] | None = None, default: bool = True):
        self.answers = list(answers or [])
        self.default = default
        self.prompts: list[str] = []
        self.options: list[list[str] | None] = []

    async def request(self, prompt: str, options: list[str] | None = None) -> bool:
        self.prompts.append(prompt)
        self.options.append(options)
        if self.answers:
            return self.answers.pop(0)
        return self.default


class FakeAbilities:
    """Nested-workflow capability over a fixed set of abilities."""

    def __init__(self, abilities: dict[str, AbilityDefinition], ctx: ExecutorContext):
        self.abilities = abilities
        self.ctx = ctx
        self.executed: list[str] = []
        self._stack: list[ExecutorContext] = []

    def get(self, name: str) -> AbilityDefinition | None:
        return self.abilities.get(name)

    async def execute(self, ability: AbilityDefinition, inputs: dict[str, Any]) -> AbilityExecution:
        self.executed.append(ability.name)
        parent = self._stack[-1] if self._stack else self.ctx
        self._stack.append(parent.nested())
        try:
            return await execute_ability(ability, inputs, self._stack[-1])
        finally:
            self._stack.pop()


@pytest.fixture
def make_ability() -> Callable[..., AbilityDefinition]:
    """Build a validated ability from a list of step mappings."""
    def _make(steps: list[dict[str, Any]], name: str = "test-ability", **fields: Any) -> AbilityDefinition:
        return AbilityDefinition.model_validate({
            "name": name,
            "description": "Test ability",
            "steps": steps,
            **fields,
        })
    return _make


@pytest.fixture
def ctx(tmp_path: Path) -> ExecutorContext:
    return ExecutorContext(cwd=str(tmp_path))


@pytest.fixture
def agents() -> FakeAgents:
    return FakeAgents()


@pytest.fixture
def skills() -> FakeSkills:
    return FakeSkills()


@pytest.fixture
def approval() -> FakeApproval:
    return FakeApproval()


@pytest.fixture
def fake_abilities() -> Callable[..., FakeAbilities]:
    return FakeAbilities


@pytest.fixture
def fake_approval() -> Callable[..., FakeApproval]:
    return FakeApproval


@pytest.fixture
def fake_agents() -> Callable[..., FakeAgents]:
    return FakeAgents
