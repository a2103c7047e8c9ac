"""Factory functions for wiring engine components from configuration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Iterable

if TYPE_CHECKING:
    from abilities.config import Config
    from abilities.core.capabilities import AgentCapability, ApprovalCapability, SkillCapability
    from abilities.core.context import ContextInjector
    from abilities.core.enforcement import EnforcementGate
    from abilities.core.manager import ExecutionManager
    from abilities.definitions.loader import AbilityLoader
    from abilities.definitions.models import AbilityDefinition
    from abilities.plugin import AbilitiesPlugin

_log = logging.getLogger(__name__)


def create_loader(config: "Config") -> "AbilityLoader":
    """Create an ability loader for the configured directories."""
    from abilities.definitions.loader import AbilityLoader

    return AbilityLoader.from_config(config.abilities)


def create_manager(config: "Config") -> "ExecutionManager":
    """Create the execution manager with configured history limits."""
    from abilities.core.manager import ExecutionManager

    executor_cfg = config.executor
    return ExecutionManager(
        max_history=executor_cfg.max_history,
        retention_seconds=executor_cfg.retention_seconds,
        cleanup_interval_seconds=executor_cfg.cleanup_interval_seconds,
        kill_on_cancel=executor_cfg.kill_on_cancel,
    )


def create_gate(config: "Config", manager: "ExecutionManager") -> "EnforcementGate":
    """Create the enforcement gate for ``manager``."""
    from abilities.core.enforcement import EnforcementGate

    return EnforcementGate(
        manager,
        default_mode=config.abilities.enforcement,
        always_allowed=config.abilities.always_allowed_tools,
        destructive_tools=config.abilities.destructive_tools,
    )


def create_injector(
    config: "Config",
    manager: "ExecutionManager",
    abilities: Callable[[], Iterable["AbilityDefinition"]],
) -> "ContextInjector":
    """Create the context injector for ``manager``."""
    from abilities.core.context import ContextInjector

    return ContextInjector(
        manager,
        abilities,
        default_mode=config.abilities.enforcement,
        auto_trigger=config.abilities.auto_trigger,
    )


def create_plugin(
    config: "Config",
    cwd: str | None = None,
    agents: "AgentCapability | None" = None,
    skills: "SkillCapability | None" = None,
    approval: "ApprovalCapability | None" = None,
) -> "AbilitiesPlugin":
    """Create a plugin with every component built from ``config``.

    Args:
        config: Full abilities Config
        cwd: Working directory for script steps
        agents: Host agent delegation, if available
        skills: Host skill loading, if available
        approval: Host approval prompts, if available

    Returns:
        Plugin ready for ``initialize()``
    """
    from abilities.plugin import AbilitiesPlugin

    plugin = AbilitiesPlugin(
        config=config,
        cwd=cwd,
        agents=agents,
        skills=skills,
        approval=approval,
    )
    _log.info(
        "Abilities plugin created",
        extra={
            "enforcement": config.abilities.enforcement.value,
            "directories": config.abilities.directories,
            "agents": agents is not None,
            "skills": skills is not None,
            "approval": approval is not None,
        },
    )
    return plugin
