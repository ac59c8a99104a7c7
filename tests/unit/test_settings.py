"""Tests for specpilot.config.settings."""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from specpilot.config.settings import AgentConfig, SpecPilotSettings, WorkflowConfig
from specpilot.enums import AgentType, ImplementMethod
from specpilot.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep SPECPILOT_ variables from the caller's environment out of the tests."""
    for name in list(os.environ):
        if name.startswith("SPECPILOT_"):
            monkeypatch.delenv(name)


class TestDefaults:
    """Test default configuration values."""

    def test_empty_configuration_is_valid(self):
        """Test every field has a default."""
        settings = SpecPilotSettings()

        assert settings.agent.command == "claude"
        assert settings.agent.agent_type == AgentType.CLAUDE
        assert settings.agent.timeout == 2400
        assert settings.workflow.max_retries == 0
        assert settings.workflow.implement_method == ImplementMethod.PHASES
        assert settings.specs_dir == Path("specs")

    def test_state_dir_expands_home(self):
        """Test the state directory expands ``~``."""
        assert SpecPilotSettings().state_dir == Path("~/.specpilot/state").expanduser()


class TestValidation:
    """Test field validation."""

    @pytest.mark.parametrize("value", [-1, 11])
    def test_max_retries_range(self, value):
        """Test max_retries must be within 0..10."""
        with pytest.raises(ValidationError):
            WorkflowConfig(max_retries=value)

    def test_blank_command_rejected(self):
        """Test the agent command must not be blank."""
        with pytest.raises(ValidationError):
            AgentConfig(command="  ")

    def test_zero_timeout_disables_limit(self):
        """Test timeout 0 maps to no limit."""
        assert AgentConfig(timeout=0).timeout_seconds is None
        assert AgentConfig(timeout=90).timeout_seconds == 90.0

    def test_unknown_implement_method(self):
        """Test only the known implement methods are accepted."""
        with pytest.raises(ValidationError):
            WorkflowConfig(implement_method="parallel")


class TestFromYaml:
    """Test loading settings from YAML files."""

    def test_load_yaml(self, tmp_path):
        """Test a full configuration file."""
        config = tmp_path / "specpilot.yaml"
        config.write_text(
            """
agent:
  command: /usr/local/bin/claude
  model: opus
  timeout: 600
workflow:
  max_retries: 3
  specs_dir: ./features
  implement_method: single-session
"""
        )

        settings = SpecPilotSettings.from_yaml(str(config))

        assert settings.agent.command == "/usr/local/bin/claude"
        assert settings.agent.model == "opus"
        assert settings.agent.timeout_seconds == 600.0
        assert settings.workflow.max_retries == 3
        assert settings.workflow.implement_method == ImplementMethod.SINGLE_SESSION
        assert settings.specs_dir == Path("features")

    def test_env_interpolation(self, tmp_path, monkeypatch):
        """Test ${VAR} and ${VAR:-default} placeholders."""
        monkeypatch.setenv("AGENT_BIN", "my-claude")
        config = tmp_path / "specpilot.yaml"
        config.write_text("agent:\n  command: ${AGENT_BIN}\n  model: ${AGENT_MODEL:-sonnet}\n")

        settings = SpecPilotSettings.from_yaml(str(config))

        assert settings.agent.command == "my-claude"
        assert settings.agent.model == "sonnet"

    def test_unset_variable(self, tmp_path, monkeypatch):
        """Test an unset variable without default is a configuration error."""
        monkeypatch.delenv("SPECPILOT_TEST_UNSET", raising=False)
        config = tmp_path / "specpilot.yaml"
        config.write_text("agent:\n  command: ${SPECPILOT_TEST_UNSET}\n")

        with pytest.raises(ConfigurationError, match="SPECPILOT_TEST_UNSET"):
            SpecPilotSettings.from_yaml(str(config))

    def test_comment_lines_not_interpolated(self, tmp_path):
        """Test placeholders in comments are left alone."""
        config = tmp_path / "specpilot.yaml"
        config.write_text("# command: ${NOT_SET_ANYWHERE}\nworkflow:\n  max_retries: 1\n")

        assert SpecPilotSettings.from_yaml(str(config)).workflow.max_retries == 1

    def test_empty_file(self, tmp_path):
        """Test an empty file yields defaults."""
        config = tmp_path / "specpilot.yaml"
        config.write_text("")

        assert SpecPilotSettings.from_yaml(str(config)).workflow.max_retries == 0

    @pytest.mark.parametrize(
        "content",
        [
            "workflow: [unclosed",
            "- a\n- b\n",
            "workflow:\n  max_retries: 42\n",
        ],
    )
    def test_invalid_files(self, tmp_path, content):
        """Test bad syntax, non-mapping roots and invalid values."""
        config = tmp_path / "specpilot.yaml"
        config.write_text(content)

        with pytest.raises(ConfigurationError):
            SpecPilotSettings.from_yaml(str(config))

    def test_missing_file(self, tmp_path):
        """Test from_yaml requires the file to exist."""
        with pytest.raises(ConfigurationError, match="not found"):
            SpecPilotSettings.from_yaml(str(tmp_path / "missing.yaml"))


class TestLoad:
    """Test SpecPilotSettings.load."""

    def test_missing_file_uses_defaults(self, tmp_path):
        """Test the configuration file is optional."""
        settings = SpecPilotSettings.load(str(tmp_path / "specpilot.yaml"))

        assert settings.workflow.max_retries == 0

    def test_environment_overrides(self, monkeypatch):
        """Test nested values can be set through SPECPILOT_ variables."""
        monkeypatch.setenv("SPECPILOT_WORKFLOW__MAX_RETRIES", "4")
        monkeypatch.setenv("SPECPILOT_AGENT__MODEL", "haiku")

        settings = SpecPilotSettings.load(None)

        assert settings.workflow.max_retries == 4
        assert settings.agent.model == "haiku"

    def test_invalid_environment_value(self, monkeypatch):
        """Test an invalid environment value is a configuration error."""
        monkeypatch.setenv("SPECPILOT_WORKFLOW__MAX_RETRIES", "99")

        with pytest.raises(ConfigurationError):
            SpecPilotSettings.load(None)
