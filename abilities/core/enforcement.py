"""Enforcement gate deciding which tools may run during a step."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from abilities.core.errors import EnforcementError
from abilities.core.prompts import block_hint
from abilities.definitions.models import EnforcementMode
from abilities.utils import get_logger

if TYPE_CHECKING:
    from abilities.core.execution import AbilityExecution
    from abilities.core.manager import ExecutionManager

logger = get_logger(__name__)

ALWAYS_ALLOWED_TOOLS = frozenset({
    "ability.list",
    "ability.status",
    "ability.cancel",
    "todoread",
    "read",
    "glob",
    "grep",
    "lsp_hover",
    "lsp_diagnostics",
    "lsp_document_symbols",
})

ALLOWED_TOOLS_BY_STEP_TYPE: dict[str, frozenset[str]] = {
    "script": frozenset(),
    "agent": frozenset({"task", "background_task", "call_omo_agent"}),
    "skill": frozenset({"skill", "slashcommand"}),
    "approval": frozenset({"ability.status", "ability.cancel"}),
    "workflow": frozenset({"ability.run", "ability.status"}),
}

DESTRUCTIVE_TOOLS = frozenset({"write", "edit", "bash", "task"})


@dataclass
class GateDecision:
    """Result of asking the gate about a tool call."""
    allowed: bool
    reason: str | None = None
    warning: str | None = None


def resolve_mode(execution: "AbilityExecution", default: EnforcementMode) -> EnforcementMode:
    """Enforcement mode for an execution: its ability's setting, else ``default``."""
    return execution.ability.settings.enforcement or default


class EnforcementGate:
    """Restrict tool usage while an ability step is running.

    The gate only reads the manager's active execution; it never changes it.

    Example:
        >>> gate = EnforcementGate(manager)
        >>> gate.check("bash")  # raises EnforcementError during a script step
    """

    def __init__(
        self,
        manager: "ExecutionManager",
        default_mode: EnforcementMode = EnforcementMode.STRICT,
        always_allowed: Iterable[str] = (),
        destructive_tools: Iterable[str] | None = None,
    ):
        """Initialize the gate.

        Args:
            manager: Source of the active execution
            default_mode: Mode used when an ability does not set one
            always_allowed: Extra tools allowed in every step
            destructive_tools: Tools denied in normal mode outside the step's set
        """
        self.manager = manager
        self.default_mode = default_mode
        self.always_allowed = ALWAYS_ALLOWED_TOOLS | frozenset(always_allowed)
        self.destructive_tools = (
            frozenset(destructive_tools) if destructive_tools is not None else DESTRUCTIVE_TOOLS
        )

    def allowed_tools(self, step_type: str) -> frozenset[str]:
        """Every tool permitted during a step of the given type."""
        return self.always_allowed | ALLOWED_TOOLS_BY_STEP_TYPE.get(step_type, frozenset())

    def authorize(self, tool: str) -> GateDecision:
        """Decide whether ``tool`` may run right now."""
        execution = self.manager.get_active()
        if execution is None or execution.current_step is None:
            return GateDecision(allowed=True)

        step = execution.current_step
        if tool in self.allowed_tools(step.type):
            return GateDecision(allowed=True)

        mode = resolve_mode(execution, self.default_mode)
        message = f"Tool '{tool}' blocked during {step.type} step '{step.id}'. {block_hint(step)}"

        if mode == EnforcementMode.STRICT:
            return GateDecision(allowed=False, reason=message)

        if mode == EnforcementMode.NORMAL:
            if tool in self.destructive_tools:
                return GateDecision(allowed=False, reason=message)
            warning = f"Tool '{tool}' used outside {step.type} step '{step.id}' expectations"
            logger.warning(
                "Tool used outside step expectations",
                extra={"tool": tool, "step_id": step.id, "step_type": step.type},
            )
            return GateDecision(allowed=True, warning=warning)

        logger.info(
            "Tool outside step expectations allowed in loose mode",
            extra={"tool": tool, "step_id": step.id, "step_type": step.type},
        )
        return GateDecision(allowed=True)

    def check(self, tool: str) -> GateDecision:
        """Like ``authorize`` but raise when the tool is denied.

        Raises:
            EnforcementError: If the tool is blocked
        """
        decision = self.authorize(tool)
        if not decision.allowed:
            execution = self.manager.get_active()
            step = execution.current_step if execution else None
            logger.warning(
                "Tool blocked",
                extra={"tool": tool, "step_id": step.id if step else None},
            )
            raise EnforcementError(
                decision.reason or f"Tool '{tool}' blocked",
                tool=tool,
                step_id=step.id if step else None,
                step_type=step.type if step else None,
            )
        return decision
