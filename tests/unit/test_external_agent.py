"""Tests for specpilot.providers.external_agent and the subprocess helper."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from specpilot.config.settings import AgentConfig
from specpilot.enums import AgentType
from specpilot.exceptions import AgentTimeoutError, ExecutionFailure
from specpilot.providers.external_agent import SKIP_PERMISSIONS_FLAG, ExternalAgentProvider
from specpilot.utils.async_subprocess import run_command

RUN_COMMAND = "specpilot.providers.external_agent.run_command"


# =============================================================================
# Tests for run_command
# =============================================================================


class TestRunCommand:
    """Test run_command against real processes."""

    @pytest.mark.asyncio
    async def test_captures_stdout(self):
        """Test stdout is decoded and returned."""
        stdout, stderr, returncode = await run_command("echo", "hello")

        assert stdout.strip() == "hello"
        assert returncode == 0

    @pytest.mark.asyncio
    async def test_non_zero_exit_is_returned(self):
        """Test a failing command reports its status instead of raising."""
        stdout, stderr, returncode = await run_command("sh", "-c", "echo partial; echo oops >&2; exit 3")

        assert returncode == 3
        assert stdout.strip() == "partial"
        assert stderr.strip() == "oops"

    @pytest.mark.asyncio
    async def test_runs_in_cwd(self, tmp_path):
        """Test the command runs in the given directory."""
        stdout, _, _ = await run_command("pwd", cwd=tmp_path)

        assert Path(stdout.strip()).resolve() == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self):
        """Test a command exceeding its timeout raises TimeoutError."""
        with pytest.raises(TimeoutError):
            await run_command("sleep", "10", timeout=0.2)

    @pytest.mark.asyncio
    async def test_missing_executable(self):
        """Test an unknown executable raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            await run_command("specpilot-no-such-binary")


# =============================================================================
# Tests for ExternalAgentProvider
# =============================================================================


class TestBuildCommand:
    """Test command line assembly."""

    def test_default_command(self):
        """Test the default invocation is claude -p <prompt>."""
        provider = ExternalAgentProvider(AgentConfig())

        assert provider.build_command("/specpilot.plan 001-login") == ["claude", "-p", "/specpilot.plan 001-login"]

    def test_model_args_and_skip_permissions(self):
        """Test optional flags appear before the prompt flag."""
        config = AgentConfig(args=["--verbose"], model="opus", skip_permissions=True)

        cmd = ExternalAgentProvider(config).build_command("/x")

        assert cmd == ["claude", "--verbose", "--model", "opus", SKIP_PERMISSIONS_FLAG, "-p", "/x"]

    def test_skip_permissions_only_for_claude(self):
        """Test custom agents never receive the Claude-specific flag."""
        config = AgentConfig(agent_type=AgentType.CUSTOM, command="my-agent", prompt_flag="--prompt", skip_permissions=True)

        assert ExternalAgentProvider(config).build_command("/x") == ["my-agent", "--prompt", "/x"]

    def test_empty_prompt_flag_passes_prompt_positionally(self):
        """Test an empty prompt flag is omitted."""
        config = AgentConfig(agent_type=AgentType.CUSTOM, command="agent", prompt_flag="")

        assert ExternalAgentProvider(config).build_command("/x") == ["agent", "/x"]


class TestInvoke:
    """Test invoke with run_command patched."""

    @pytest.mark.asyncio
    async def test_success(self, tmp_path):
        """Test a zero exit is a successful result without stderr."""
        provider = ExternalAgentProvider(AgentConfig(), working_dir=tmp_path)

        with patch(RUN_COMMAND, new=AsyncMock(return_value=("done", "", 0))) as mock_run:
            result = await provider.invoke("/x", timeout=30)

        assert result.success
        assert result.output == "done"
        assert result.error is None
        mock_run.assert_awaited_once_with("claude", "-p", "/x", cwd=tmp_path, timeout=30)

    @pytest.mark.asyncio
    async def test_cwd_overrides_working_dir(self, tmp_path):
        """Test an explicit cwd wins over the default working directory."""
        provider = ExternalAgentProvider(AgentConfig(), working_dir="/somewhere")

        with patch(RUN_COMMAND, new=AsyncMock(return_value=("", "", 0))) as mock_run:
            await provider.invoke("/x", cwd=tmp_path)

        assert mock_run.await_args.kwargs["cwd"] == tmp_path

    @pytest.mark.asyncio
    async def test_non_zero_exit(self):
        """Test a non-zero exit is reported in the result, not raised."""
        provider = ExternalAgentProvider(AgentConfig())

        with patch(RUN_COMMAND, new=AsyncMock(return_value=("", "rate limited", 2))):
            result = await provider.invoke("/x")

        assert not result.success
        assert result.exit_code == 2
        assert result.error == "rate limited"

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test a timeout becomes AgentTimeoutError with the command line."""
        provider = ExternalAgentProvider(AgentConfig())

        with patch(RUN_COMMAND, new=AsyncMock(side_effect=TimeoutError())):
            with pytest.raises(AgentTimeoutError) as exc_info:
                await provider.invoke("/specpilot.plan 001-login", timeout=5.0)

        assert exc_info.value.timeout_seconds == 5.0
        assert exc_info.value.command == "claude -p '/specpilot.plan 001-login'"
        assert "increase agent.timeout" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_cli(self):
        """Test a missing executable becomes ExecutionFailure."""
        provider = ExternalAgentProvider(AgentConfig(command="claude"))

        with patch(RUN_COMMAND, new=AsyncMock(side_effect=FileNotFoundError())):
            with pytest.raises(ExecutionFailure, match="claude CLI not found in PATH"):
                await provider.invoke("/x")

    @pytest.mark.asyncio
    async def test_launch_error(self):
        """Test other OS errors become ExecutionFailure."""
        provider = ExternalAgentProvider(AgentConfig())

        with patch(RUN_COMMAND, new=AsyncMock(side_effect=PermissionError("denied"))):
            with pytest.raises(ExecutionFailure, match="cannot launch claude"):
                await provider.invoke("/x")
