"""The ``ability.*`` tools."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from abilities.core.errors import LifecycleError
from abilities.core.execution import ExecutionStatus
from abilities.core.prompts import format_execution_result, format_plan
from abilities.definitions.validator import validate_ability
from abilities.skills.base import BaseSkill, ToolDefinition, ToolResult
from abilities.utils import get_logger

if TYPE_CHECKING:
    from abilities.plugin import AbilitiesPlugin

logger = get_logger(__name__)


class AbilitiesSkill(BaseSkill):
    """Tools for listing, running and controlling abilities.

    Example:
        >>> skill = AbilitiesSkill(plugin)
        >>> result = await skill.execute("ability.run", {"name": "deploy", "inputs": {"env": "prod"}})
    """

    name = "abilities"
    description = "List, run and control enforced workflows"

    def __init__(self, plugin: "AbilitiesPlugin"):
        """Initialize the skill.

        Args:
            plugin: Plugin owning the loaded abilities and the execution manager
        """
        self.plugin = plugin

    def get_tools(self) -> list[ToolDefinition]:
        """Return ability tool definitions."""
        available = "\n".join(
            f"- {loaded.ability.name}: {loaded.ability.description}"
            for loaded in self.plugin.loader.abilities.values()
        )
        run_description = "Execute an ability workflow."
        if available:
            run_description += f"\n\nAvailable abilities:\n{available}"

        return [
            ToolDefinition(
                name="ability.list",
                description="List all available abilities",
                parameters={"type": "object", "properties": {}},
            ),
            ToolDefinition(
                name="ability.run",
                description=run_description,
                parameters={
                    "type": "object",
                    "properties": {
                        "name": {"type": "string", "description": "Ability name to run"},
                        "inputs": {"type": "object", "description": "Input values for the ability"},
                    },
                    "required": ["name"],
                },
            ),
            ToolDefinition(
                name="ability.status",
                description="Get status of the active ability execution",
                parameters={"type": "object", "properties": {}},
            ),
            ToolDefinition(
                name="ability.cancel",
                description="Cancel the active ability execution",
                parameters={"type": "object", "properties": {}},
            ),
            ToolDefinition(
                name="ability.validate",
                description="Validate an ability definition",
                parameters={
                    "type": "object",
                    "properties": {
                        "name": {"type": "string", "description": "Ability name to validate"},
                    },
                    "required": ["name"],
                },
            ),
            ToolDefinition(
                name="ability.agent",
                description="List abilities available to an agent",
                parameters={
                    "type": "object",
                    "properties": {
                        "agent": {
                            "type": "string",
                            "description": "Agent id (defaults to the current agent)",
                        },
                    },
                },
            ),
        ]

    async def execute(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute an ability tool."""
        if tool_name == "ability.list":
            return self._list()
        elif tool_name == "ability.run":
            return await self._run(arguments.get("name", ""), arguments.get("inputs") or {})
        elif tool_name == "ability.status":
            return self._status()
        elif tool_name == "ability.cancel":
            return await self._cancel()
        elif tool_name == "ability.validate":
            return self._validate(arguments.get("name", ""))
        elif tool_name == "ability.agent":
            return self._agent(arguments.get("agent"))
        return ToolResult.fail(f"Unknown tool: {tool_name}")

    def _list(self) -> ToolResult:
        items = self.plugin.loader.list_items()
        if not items:
            return ToolResult.ok("No abilities loaded.")

        lines = ["Available abilities:", ""]
        for item in items:
            steps = "step" if item.step_count == 1 else "steps"
            lines.append(f"- **{item.name}** ({item.source.value}, {item.step_count} {steps})")
            lines.append(f"  {item.description}")
        return ToolResult.ok("\n".join(lines))

    async def _run(self, name: str, inputs: dict[str, Any]) -> ToolResult:
        loaded = self.plugin.loader.get(name)
        if loaded is None:
            return ToolResult.fail(f"Ability '{name}' not found")

        agent = self.plugin.current_agent
        if agent and not self.plugin.is_ability_allowed_for_agent(name, agent):
            return ToolResult.fail(f"Ability '{name}' is not allowed for agent '{agent}'")

        ability = loaded.ability
        logger.info("Executing ability", extra={"ability": name, "plan": format_plan(ability, inputs)})

        try:
            execution = await self.plugin.manager.start(
                ability,
                inputs,
                self.plugin.build_context(),
                session_id=self.plugin.session_id,
            )
        except LifecycleError as e:
            return ToolResult.fail(str(e))

        payload = {
            "status": execution.status.value,
            "ability": ability.name,
            "execution_id": execution.id,
            "result": format_execution_result(execution),
            "steps": [
                {
                    "id": r.step_id,
                    "status": r.status.value,
                    "duration_ms": r.duration_ms,
                    "output": r.output,
                    "error": r.error,
                }
                for r in execution.completed_steps
            ],
        }
        if execution.status == ExecutionStatus.COMPLETED:
            return ToolResult.ok(payload)
        return ToolResult.fail(execution.error or f"Ability '{name}' {execution.status.value}", output=payload)

    def _status(self) -> ToolResult:
        execution = self.plugin.manager.get_active()
        if execution is None:
            return ToolResult.ok({"status": "none", "message": "No active ability execution"})

        summary = execution.to_summary()
        summary["result"] = format_execution_result(execution)
        return ToolResult.ok(summary)

    async def _cancel(self) -> ToolResult:
        if await self.plugin.manager.cancel():
            return ToolResult.ok({"status": "cancelled", "message": "Ability execution cancelled"})
        return ToolResult.ok({"status": "none", "message": "No active ability to cancel"})

    def _validate(self, name: str) -> ToolResult:
        loaded = self.plugin.loader.get(name)
        if loaded is not None:
            result = validate_ability(loaded.ability)
            issues = result.errors
        elif name in self.plugin.loader.failures:
            issues = self.plugin.loader.failures[name]
        else:
            return ToolResult.fail(f"Ability '{name}' not found")

        if not issues:
            return ToolResult.ok(f"Ability '{name}' is valid")

        details = "\n".join(f"- {issue}" for issue in issues)
        return ToolResult.fail(f"Ability '{name}' has errors:\n{details}")

    def _agent(self, agent: str | None) -> ToolResult:
        agent = agent or self.plugin.current_agent
        if not agent:
            return ToolResult.ok({
                "message": "No agent specified and no current agent set.",
                "hint": "Provide an agent id or use this tool after an agent is active.",
            })

        abilities = self.plugin.get_agent_abilities(agent)
        if not abilities:
            return ToolResult.ok({
                "agent": agent,
                "abilities": [],
                "message": f"No abilities registered for agent '{agent}'",
            })

        return ToolResult.ok({
            "agent": agent,
            "abilities": [
                {
                    "name": loaded.ability.name,
                    "description": loaded.ability.description,
                    "triggers": loaded.ability.triggers.keywords if loaded.ability.triggers else [],
                    "exclusive": loaded.ability.exclusive_agent == agent,
                }
                for loaded in abilities
            ],
        })
