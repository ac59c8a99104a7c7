"""Configuration system for specpilot.

This package provides type-safe configuration management using Pydantic.

Key Components:
    - SpecPilotSettings: Main configuration container with YAML loading support
    - AgentConfig: Agent CLI invocation settings
    - WorkflowConfig: Retry limits, directories and implementation method

Example:
    >>> from specpilot.config import SpecPilotSettings
    >>> settings = SpecPilotSettings.from_yaml("specpilot.yaml")
    >>> settings.workflow.max_retries
    0
"""

from specpilot.config.settings import AgentConfig, SpecPilotSettings, WorkflowConfig

__all__ = ["AgentConfig", "SpecPilotSettings", "WorkflowConfig"]
