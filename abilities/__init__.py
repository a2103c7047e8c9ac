"""Abilities - enforced, step-based workflows for agents."""

from abilities.config import Config, load_config
from abilities.core import ExecutionManager, ExecutorContext, execute_ability
from abilities.definitions import AbilityDefinition, AbilityLoader, validate_ability
from abilities.plugin import AbilitiesPlugin

__version__ = "0.1.0"

__all__ = [
    "AbilitiesPlugin",
    "AbilityDefinition",
    "AbilityLoader",
    "Config",
    "ExecutionManager",
    "ExecutorContext",
    "execute_ability",
    "load_config",
    "validate_ability",
]
