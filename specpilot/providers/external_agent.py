"""External agent provider that runs an AI coding agent CLI such as Claude Code."""

import shlex
from pathlib import Path

import structlog

from specpilot.config.settings import AgentConfig
from specpilot.enums import AgentType
from specpilot.exceptions import AgentTimeoutError, ExecutionFailure
from specpilot.providers.base import AgentProvider, InvocationResult
from specpilot.utils.async_subprocess import run_command

log = structlog.get_logger(__name__)

SKIP_PERMISSIONS_FLAG = "--dangerously-skip-permissions"


class ExternalAgentProvider(AgentProvider):
    """Agent provider that executes prompts through an external CLI.

    The command line is ``<command> [args...] [--model M]
    [--dangerously-skip-permissions] <prompt_flag> <prompt>``. The agent
    edits files in the working directory directly.
    """

    def __init__(self, config: AgentConfig, working_dir: str | Path | None = None) -> None:
        """Initialize external agent provider.

        Args:
            config: Agent CLI configuration
            working_dir: Default working directory for agent execution
        """
        self.config = config
        self.working_dir = Path(working_dir) if working_dir else None

    def build_command(self, prompt: str) -> list[str]:
        """Assemble the argv for one invocation.

        Args:
            prompt: Prompt passed after the prompt flag

        Returns:
            Command and arguments as a list
        """
        cmd = [self.config.command, *self.config.args]
        if self.config.model:
            cmd.extend(["--model", self.config.model])
        if self.config.skip_permissions and self.config.agent_type == AgentType.CLAUDE:
            cmd.append(SKIP_PERMISSIONS_FLAG)
        if self.config.prompt_flag:
            cmd.append(self.config.prompt_flag)
        cmd.append(prompt)
        return cmd

    async def invoke(self, prompt: str, cwd: Path | None = None, timeout: float | None = None) -> InvocationResult:
        cmd = self.build_command(prompt)
        run_dir = cwd or self.working_dir
        display = shlex.join(cmd)

        log.info("agent_invocation_started", agent=str(self.config.agent_type), prompt=prompt, timeout=timeout)

        try:
            stdout, stderr, code = await run_command(*cmd, cwd=run_dir, timeout=timeout)
        except TimeoutError as e:
            log.warning("agent_invocation_timed_out", command=display, timeout=timeout)
            raise AgentTimeoutError(
                f"command timed out after {timeout}s: {display} (hint: increase agent.timeout in config)",
                timeout_seconds=timeout,
                command=display,
            ) from e
        except FileNotFoundError as e:
            log.error("agent_cli_not_found", command=self.config.command)
            raise ExecutionFailure(f"{self.config.command} CLI not found in PATH") from e
        except OSError as e:
            log.error("agent_cli_launch_failed", command=self.config.command, error=str(e))
            raise ExecutionFailure(f"cannot launch {self.config.command}: {e}") from e

        success = code == 0
        log.info(
            "agent_invocation_complete",
            success=success,
            exit_code=code,
            output_length=len(stdout),
            error_length=len(stderr),
        )
        return InvocationResult(
            success=success,
            exit_code=code,
            output=stdout,
            error=stderr if not success else None,
        )
