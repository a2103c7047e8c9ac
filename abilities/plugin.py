"""Host-facing plugin: hooks, events, tools and agent bindings."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from abilities.config import Config
from abilities.core.enforcement import GateDecision
from abilities.core.execution import AbilityExecution, ExecutorContext, StepResult
from abilities.core.executor import execute_ability
from abilities.factory import create_gate, create_injector, create_loader, create_manager
from abilities.skills.ability_tools import AbilitiesSkill
from abilities.skills.base import ToolDefinition, ToolResult
from abilities.utils import get_logger

if TYPE_CHECKING:
    from abilities.core.capabilities import AgentCapability, ApprovalCapability, SkillCapability
    from abilities.definitions.models import AbilityDefinition, LoadedAbility, Step

logger = get_logger(__name__)


class LoadedAbilities:
    """Nested-workflow capability backed by the plugin's loaded abilities.

    Nested runs are strictly stacked; each one runs in a context one level
    deeper than the run that started it.
    """

    def __init__(self, plugin: "AbilitiesPlugin"):
        self.plugin = plugin
        self._contexts: list[ExecutorContext] = []

    @property
    def depth(self) -> int:
        return len(self._contexts)

    def get(self, name: str) -> "AbilityDefinition | None":
        loaded = self.plugin.loader.get(name)
        return loaded.ability if loaded else None

    async def execute(self, ability: "AbilityDefinition", inputs: dict[str, Any]) -> AbilityExecution:
        parent = self._contexts[-1] if self._contexts else self.plugin.build_context()
        ctx = parent.nested()
        logger.info("Running nested ability", extra={"ability": ability.name, "depth": ctx.depth})

        self._contexts.append(ctx)
        try:
            return await execute_ability(ability, inputs, ctx, session_id=self.plugin.session_id)
        finally:
            self._contexts.pop()


class AbilitiesPlugin:
    """Connect the abilities engine to an agent host.

    Handles:
    - Loading ability definitions
    - Injecting ability context into chat messages
    - Gating tool calls while a step runs
    - Exposing the ``ability.*`` tools
    - Tracking the current agent and its ability bindings

    Example:
        >>> plugin = AbilitiesPlugin(config, agents=my_agents)
        >>> await plugin.initialize()
        >>> result = await plugin.call_tool("ability.run", {"name": "deploy"})
    """

    def __init__(
        self,
        config: Config | None = None,
        cwd: str | None = None,
        agents: "AgentCapability | None" = None,
        skills: "SkillCapability | None" = None,
        approval: "ApprovalCapability | None" = None,
    ):
        """Initialize the plugin.

        Args:
            config: Abilities configuration (defaults when omitted)
            cwd: Working directory for script steps
            agents: Host agent delegation, if available
            skills: Host skill loading, if available
            approval: Host approval prompts, if available
        """
        self.config = config or Config()
        self.cwd = cwd or os.getcwd()
        self.agents = agents
        self.skills = skills
        self.approval = approval

        self.loader = create_loader(self.config)
        self.manager = create_manager(self.config)
        self.gate = create_gate(self.config, self.manager)
        self.injector = create_injector(
            self.config,
            self.manager,
            lambda: [loaded.ability for loaded in self.loader.abilities.values()],
        )
        self.tools = AbilitiesSkill(self)
        self.nested = LoadedAbilities(self)

        self.session_id: str | None = None
        self.current_agent: str | None = None
        self._agent_bindings: dict[str, list[str]] = {}
        self.initialized = False

    async def initialize(self) -> None:
        """Load abilities and start background cleanup."""
        if self.config.abilities.enabled:
            self.loader.load()
        self.manager.start_cleanup_loop()
        self.initialized = True
        logger.info("Abilities plugin initialized", extra={"abilities": len(self.loader.abilities)})

    def _on_step_start(self, step: "Step") -> None:
        logger.info("Step started", extra={"step_id": step.id, "step_type": step.type})

    def _on_step_complete(self, step: "Step", result: StepResult) -> None:
        logger.info(
            "Step completed",
            extra={"step_id": step.id, "status": result.status.value, "duration_ms": result.duration_ms},
        )

    def _on_step_fail(self, step: "Step", result: StepResult) -> None:
        logger.warning("Step failed", extra={"step_id": step.id, "error": result.error})

    def build_context(self) -> ExecutorContext:
        """Executor context wired to the host capabilities."""
        executor_cfg = self.config.executor
        return ExecutorContext(
            cwd=self.cwd,
            agents=self.agents,
            skills=self.skills,
            approval=self.approval,
            abilities=self.nested,
            on_step_start=self._on_step_start,
            on_step_complete=self._on_step_complete,
            on_step_fail=self._on_step_fail,
            context_max_chars=executor_cfg.context_max_chars,
            summary_head_lines=executor_cfg.summary_head_lines,
            summary_tail_lines=executor_cfg.summary_tail_lines,
            default_max_retries=executor_cfg.default_max_retries,
            max_depth=executor_cfg.max_nesting_depth,
        )

    async def handle_event(self, event: dict[str, Any]) -> None:
        """React to host events.

        Args:
            event: Mapping with ``type`` and optional ``properties``
        """
        event_type = event.get("type")
        props = event.get("properties") or {}

        if event_type == "session.created":
            info = props.get("info") or {}
            if not info.get("parentID"):
                self.session_id = info.get("id")

        elif event_type == "session.deleted":
            info = props.get("info") or {}
            session_id = info.get("id")
            if session_id:
                await self.manager.on_session_deleted(session_id)
                if session_id == self.session_id:
                    self.session_id = None

        elif event_type == "agent.changed":
            agent = props.get("agent") or {}
            agent_id = agent.get("id")
            if agent_id:
                self.set_current_agent(agent_id)
                if agent.get("abilities"):
                    self.register_agent_abilities(agent_id, agent["abilities"])

    def handle_chat_message(self, parts: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Prepend ability context to an outgoing chat message.

        Args:
            parts: Message parts; text parts carry ``type: "text"``

        Returns:
            The parts, with a synthetic text part first when there is context
        """
        text = " ".join(
            part.get("text", "") for part in parts if part.get("type") == "text"
        )
        injection = self.injector.build_injection(text)
        if injection:
            parts.insert(0, {"type": "text", "text": injection, "synthetic": True})
        return parts

    def before_tool(self, tool: str) -> GateDecision:
        """Gate a tool call; raises ``EnforcementError`` when it is blocked."""
        return self.gate.check(tool)

    def after_tool(self, tool: str, result: ToolResult) -> None:
        """Log notable tool outcomes."""
        if tool != "ability.run" or not isinstance(result.output, dict):
            return

        status = result.output.get("status")
        ability = result.output.get("ability")
        if status == "completed":
            logger.info("Ability complete", extra={"ability": ability})
        elif status in ("failed", "cancelled"):
            logger.warning("Ability did not complete", extra={"ability": ability, "status": status})

    def handle_session_idle(self) -> str | None:
        """Reminder to continue the active ability when the host goes idle."""
        reminder = self.injector.build_idle_reminder()
        if reminder:
            logger.info("Session idle during ability", extra={"ability": self.manager.get_active().ability.name})
        return reminder

    def get_tools(self) -> list[ToolDefinition]:
        return self.tools.get_tools()

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ToolResult:
        """Gate and run a tool.

        Raises:
            EnforcementError: If the gate blocks the tool
        """
        self.before_tool(name)

        if not self.tools.provides_tool(name):
            return ToolResult.fail(f"Unknown tool: {name}")

        try:
            result = await self.tools.execute(name, arguments or {})
        except Exception as e:
            logger.error("Tool execution failed", extra={"tool": name, "error": str(e)})
            return ToolResult.fail(str(e))

        self.after_tool(name, result)
        return result

    def register_agent_abilities(self, agent_id: str, ability_names: list[str]) -> None:
        self._agent_bindings[agent_id] = list(ability_names)
        logger.info("Registered agent abilities", extra={"agent": agent_id, "count": len(ability_names)})

    def set_current_agent(self, agent_id: str | None) -> None:
        self.current_agent = agent_id
        if agent_id:
            logger.debug("Current agent set", extra={"agent": agent_id})

    def get_agent_abilities(self, agent_id: str) -> list["LoadedAbility"]:
        """Abilities bound to an agent or declared compatible with it."""
        result: dict[str, "LoadedAbility"] = {}

        for name in self._agent_bindings.get(agent_id, []):
            loaded = self.loader.get(name)
            if loaded is not None:
                result[name] = loaded

        for name, loaded in self.loader.abilities.items():
            ability = loaded.ability
            if agent_id in ability.compatible_agents or ability.exclusive_agent == agent_id:
                result.setdefault(name, loaded)

        return list(result.values())

    def is_ability_allowed_for_agent(self, ability_name: str, agent_id: str) -> bool:
        """Whether ``agent_id`` may run ``ability_name``."""
        loaded = self.loader.get(ability_name)
        if loaded is None:
            return False

        ability = loaded.ability
        if ability.exclusive_agent and ability.exclusive_agent != agent_id:
            return False
        if ability.compatible_agents:
            return agent_id in ability.compatible_agents

        bound = self._agent_bindings.get(agent_id)
        if bound is not None:
            return ability_name in bound
        return True

    async def cleanup(self) -> None:
        """Cancel any active execution and drop all state."""
        await self.manager.stop_cleanup_loop()
        await self.manager.reset()
        self.loader = create_loader(self.config)
        self._agent_bindings.clear()
        self.current_agent = None
        self.initialized = False
