"""Host capabilities the engine calls but does not implement."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from abilities.core.execution import AbilityExecution
    from abilities.definitions.models import AbilityDefinition


class AgentCapability(Protocol):
    """Delegates a prompt to a named agent and returns its reply."""

    async def call(self, agent: str, prompt: str) -> str: ...


class SkillCapability(Protocol):
    """Loads a named skill and returns its instructions or result."""

    async def load(self, name: str, inputs: dict[str, Any] | None = None) -> str: ...


class ApprovalCapability(Protocol):
    """Asks a human to approve or reject."""

    async def request(self, prompt: str, options: list[str] | None = None) -> bool: ...


class AbilityCapability(Protocol):
    """Looks up and runs nested abilities."""

    def get(self, name: str) -> "AbilityDefinition | None": ...

    async def execute(self, ability: "AbilityDefinition", inputs: dict[str, Any]) -> "AbilityExecution": ...
