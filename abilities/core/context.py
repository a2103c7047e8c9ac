"""Context injection for the controlling agent."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Callable, Iterable

from abilities.core.enforcement import resolve_mode
from abilities.core.prompts import (
    ACTIVE_ABILITY_TEMPLATE,
    DETECTED_ABILITY_TEMPLATE,
    IDLE_NOTICE,
    IDLE_STRICT_NOTICE,
    STRICT_MODE_NOTICE,
    step_instructions,
)
from abilities.definitions.models import EnforcementMode
from abilities.utils import get_logger

if TYPE_CHECKING:
    from abilities.core.execution import AbilityExecution
    from abilities.core.manager import ExecutionManager
    from abilities.definitions.models import AbilityDefinition

logger = get_logger(__name__)


def matches_trigger(ability: "AbilityDefinition", text: str) -> bool:
    """Check whether ``text`` matches one of the ability's triggers.

    Keywords match as case-insensitive substrings, patterns as
    case-insensitive regular expressions. Invalid patterns never match.
    """
    if ability.triggers is None or not text:
        return False

    lowered = text.lower()
    for keyword in ability.triggers.keywords:
        if keyword and keyword.lower() in lowered:
            return True

    for pattern in ability.triggers.patterns:
        try:
            if re.search(pattern, text, re.IGNORECASE):
                return True
        except re.error:
            logger.debug("Skipping invalid trigger pattern", extra={"ability": ability.name, "pattern": pattern})
    return False


class ContextInjector:
    """Build the text injected into the agent's conversation.

    While an ability runs, the injection describes the current step. When
    nothing runs, it may suggest an ability whose triggers match the user's
    message. Abilities are only ever suggested, never started.

    Example:
        >>> injector = ContextInjector(manager, lambda: registry.values())
        >>> text = injector.build_injection("please deploy to staging")
    """

    def __init__(
        self,
        manager: "ExecutionManager",
        abilities: Callable[[], Iterable["AbilityDefinition"]],
        default_mode: EnforcementMode = EnforcementMode.STRICT,
        auto_trigger: bool = True,
    ):
        """Initialize the injector.

        Args:
            manager: Source of the active execution
            abilities: Returns the currently loaded abilities
            default_mode: Enforcement mode when an ability does not set one
            auto_trigger: Suggest abilities whose triggers match
        """
        self.manager = manager
        self.abilities = abilities
        self.default_mode = default_mode
        self.auto_trigger = auto_trigger

    def build_injection(self, message_text: str) -> str | None:
        """Text to prepend to the next user message, if any."""
        execution = self.manager.get_active()
        if execution is not None:
            return self.build_active_context(execution)

        if not self.auto_trigger:
            return None

        ability = self.detect_ability(message_text)
        if ability is None:
            return None

        logger.info("Ability trigger matched", extra={"ability": ability.name})
        return DETECTED_ABILITY_TEMPLATE.format(name=ability.name, description=ability.description)

    def build_active_context(self, execution: "AbilityExecution") -> str:
        """Describe the active execution and what the current step expects."""
        parts = [ACTIVE_ABILITY_TEMPLATE.format(name=execution.ability.name, progress=execution.progress)]

        step = execution.current_step
        if step is not None:
            parts.append(f"### Current Step: {step.id} [{step.type}]")
            if step.description:
                parts.append(step.description)
            parts.append(step_instructions(step))

        if resolve_mode(execution, self.default_mode) == EnforcementMode.STRICT:
            parts.append(STRICT_MODE_NOTICE)

        return "\n\n".join(parts)

    def build_idle_reminder(self) -> str | None:
        """Continuation reminder used when the host goes idle mid-execution."""
        execution = self.manager.get_active()
        if execution is None:
            return None

        parts = [
            f"## Ability In Progress: {execution.ability.name}",
            f"**Progress:** {execution.progress} steps completed",
        ]
        if execution.current_step is not None:
            parts.append(f"**Current Step:** {execution.current_step.id} [{execution.current_step.type}]")

        if resolve_mode(execution, self.default_mode) == EnforcementMode.STRICT:
            parts.append(IDLE_STRICT_NOTICE)
        else:
            parts.append(IDLE_NOTICE)
        return "\n\n".join(parts)

    def detect_ability(self, text: str) -> "AbilityDefinition | None":
        """First loaded ability whose triggers match ``text``."""
        for ability in self.abilities():
            if matches_trigger(ability, text):
                return ability
        return None
