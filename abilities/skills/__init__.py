"""Tool surface for abilities."""

from abilities.skills.ability_tools import AbilitiesSkill
from abilities.skills.base import BaseSkill, ToolDefinition, ToolResult

__all__ = ["AbilitiesSkill", "BaseSkill", "ToolDefinition", "ToolResult"]
