"""
Abstract base class for agent providers.

The execution engine depends only on this capability: hand a prompt to an
agent that works on files in a directory, and report whether the run
succeeded. The agent's textual output is never interpreted; stages are
judged by validating the files the agent left behind.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class InvocationResult:
    """Outcome of one agent invocation."""

    success: bool
    """True when the agent process exited with status 0."""

    exit_code: int
    """Process exit status."""

    output: str = ""
    """Captured stdout, kept for debugging only."""

    error: str | None = None
    """Captured stderr when the run failed."""


class AgentProvider(ABC):
    """Abstract base class for agent implementations.

    Implementations raise `AgentTimeoutError` when the run exceeds its
    timeout, and `ExecutionFailure` when the agent cannot be launched at
    all. A launched agent that exits non-zero is reported through
    `InvocationResult.success` instead of an exception.
    """

    @abstractmethod
    async def invoke(self, prompt: str, cwd: Path | None = None, timeout: float | None = None) -> InvocationResult:
        """Run the agent on a prompt.

        Args:
            prompt: Opaque prompt or slash command, e.g. ``/plan``
            cwd: Working directory for the agent; the current directory if None
            timeout: Wall-clock limit in seconds; None for no limit

        Returns:
            InvocationResult describing the process outcome

        Raises:
            AgentTimeoutError: If the timeout elapsed; the process is killed
            ExecutionFailure: If the agent executable could not be started
        """
        pass
