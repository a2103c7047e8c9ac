"""Configuration management for the abilities engine."""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from abilities.definitions.models import EnforcementMode


def _substitute_env_vars(value: Any) -> Any:
    """Recursively substitute environment variables in config values.

    Supports ${VAR_NAME} and ${VAR_NAME:-default} syntax.
    """
    if isinstance(value, str):
        pattern = r'\$\{([^}:]+)(?::-([^}]*))?\}'

        def replacer(match: re.Match) -> str:
            var_name = match.group(1)
            default = match.group(2) if match.group(2) is not None else ""
            return os.environ.get(var_name, default)

        return re.sub(pattern, replacer, value)
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(v) for v in value]
    return value


class AbilitiesConfig(BaseModel):
    """Ability discovery and enforcement configuration."""
    enabled: bool = True
    auto_trigger: bool = True
    enforcement: EnforcementMode = EnforcementMode.STRICT
    directories: list[str] = Field(default_factory=lambda: [".abilities"])
    global_directory: str | None = "~/.config/abilities"
    include_global: bool = True
    disabled_abilities: list[str] = Field(default_factory=list)
    always_allowed_tools: list[str] = Field(default_factory=list)  # added to the built-in set
    destructive_tools: list[str] = Field(default_factory=lambda: ["write", "edit", "bash", "task"])


class ExecutorConfig(BaseModel):
    """Execution and history configuration."""
    max_history: int = 50
    retention_seconds: float = 3600
    cleanup_interval_seconds: float = 300
    context_max_chars: int = 8000
    summary_head_lines: int = 10
    summary_tail_lines: int = 5
    default_max_retries: int = 2
    max_nesting_depth: int = 5
    kill_on_cancel: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: str = "text"


class Config(BaseSettings):
    """Main abilities configuration."""
    abilities: AbilitiesConfig = Field(default_factory=AbilitiesConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: str | Path = "abilities.yaml") -> Config:
    """Load configuration from YAML file with environment variable substitution.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Loaded and validated Config object.
    """
    config_path = Path(config_path)

    if not config_path.exists():
        return Config()

    with open(config_path) as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        return Config()

    config_data = _substitute_env_vars(raw_config)

    return Config(**config_data)


def generate_default_config(path: str | Path = "abilities.yaml") -> None:
    """Generate a default configuration file.

    Args:
        path: Path to write the configuration file.
    """
    default_config = """\
# Abilities configuration
# Environment variables can be substituted with ${VAR_NAME} syntax

abilities:
  enabled: true
  auto_trigger: true          # suggest abilities whose triggers match a message
  enforcement: "strict"       # strict | normal | loose
  directories:
    - ".abilities"
  global_directory: "${ABILITIES_GLOBAL_DIR:-~/.config/abilities}"
  include_global: true
  disabled_abilities: []
  always_allowed_tools: []
  destructive_tools:
    - write
    - edit
    - bash
    - task

executor:
  max_history: 50
  retention_seconds: 3600
  cleanup_interval_seconds: 300
  context_max_chars: 8000     # per prior-step output embedded in agent prompts
  summary_head_lines: 10
  summary_tail_lines: 5
  default_max_retries: 2
  max_nesting_depth: 5
  kill_on_cancel: true

logging:
  level: "${ABILITIES_LOG_LEVEL:-INFO}"
  format: "text"              # text | json
"""

    path = Path(path)
    path.write_text(default_config)
