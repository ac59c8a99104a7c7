"""
Configuration system using Pydantic for type-safe settings management.

This module provides configuration classes for the agent invocation and the
workflow engine (retry limits, directories, implementation method).
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from specpilot.enums import AgentType, ImplementMethod
from specpilot.exceptions import ConfigurationError


class AgentConfig(BaseModel):
    """AI agent CLI configuration.

    The agent is invoked as ``<command> <args...> <prompt_flag> <prompt>``,
    with ``--dangerously-skip-permissions`` inserted before the prompt flag
    when ``skip_permissions`` is enabled.
    """

    agent_type: AgentType = Field(default=AgentType.CLAUDE, description="Type of agent CLI")
    command: str = Field(default="claude", description="Agent executable name or path")
    args: list[str] = Field(default_factory=list, description="Extra arguments passed before the prompt")
    prompt_flag: str = Field(default="-p", description="Flag that introduces the prompt argument")
    model: str | None = Field(default=None, description="Model identifier passed with --model")
    skip_permissions: bool = Field(default=False, description="Run the agent without permission prompts")
    timeout: int = Field(default=2400, ge=0, description="Agent timeout in seconds (0 disables the timeout)")

    @model_validator(mode="after")
    def validate_command(self) -> AgentConfig:
        """Reject a blank executable name."""
        if not self.command.strip():
            raise ValueError("agent command must not be empty")
        return self

    @property
    def timeout_seconds(self) -> float | None:
        """Timeout as passed to asyncio, None when disabled."""
        return float(self.timeout) if self.timeout > 0 else None


class WorkflowConfig(BaseModel):
    """Workflow engine configuration."""

    max_retries: int = Field(default=0, ge=0, le=10, description="Retries allowed per stage after the first attempt")
    specs_dir: str = Field(default="./specs", description="Directory holding NNN-name spec directories")
    state_dir: str = Field(default="~/.specpilot/state", description="Directory for persisted retry state")
    implement_method: ImplementMethod = Field(
        default=ImplementMethod.PHASES, description="Default split of the implement stage"
    )


class SpecPilotSettings(BaseSettings):
    """Main specpilot settings.

    This class combines all configuration sections and provides methods
    for loading from YAML files with environment variable interpolation.
    Every field has a default, so an empty configuration is valid.
    """

    model_config = SettingsConfigDict(
        env_prefix="SPECPILOT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    agent: AgentConfig = Field(default_factory=AgentConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)

    @property
    def state_dir(self) -> Path:
        """Get state directory as Path object with ``~`` expanded."""
        return Path(self.workflow.state_dir).expanduser()

    @property
    def specs_dir(self) -> Path:
        """Get specs directory as Path object."""
        return Path(self.workflow.specs_dir).expanduser()

    @classmethod
    def from_yaml(cls, config_path: str) -> SpecPilotSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} and ${VAR_NAME:-default} syntax for environment
        variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            SpecPilotSettings instance

        Raises:
            ConfigurationError: If config file is missing, unreadable or invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @classmethod
    def load(cls, config_path: str | None) -> SpecPilotSettings:
        """Load settings from a file when it exists, defaults otherwise.

        Args:
            config_path: Optional path to a YAML configuration file

        Returns:
            SpecPilotSettings instance
        """
        if config_path and Path(config_path).exists():
            return cls.from_yaml(config_path)
        try:
            return cls()
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Args:
            content: String content with placeholders

        Returns:
            Content with environment variables substituted

        Raises:
            ValueError: If a required environment variable is not set

        Note:
            YAML comment lines (starting with #) are preserved unchanged.
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            stripped = line.lstrip()
            if stripped.startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
