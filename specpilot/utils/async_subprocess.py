"""Async subprocess utilities.

Provides non-blocking subprocess execution for the agent invocation, so the
event loop stays responsive while a long agent session runs.

Key Features:
    - Non-blocking execution compatible with asyncio
    - Configurable timeout with automatic process cleanup
    - Exit status returned to the caller, never raised

Example:
    >>> from specpilot.utils.async_subprocess import run_command
    >>> stdout, stderr, code = await run_command("claude", "--version")
    >>> if code == 0:
    ...     print(stdout)
"""

import asyncio
from pathlib import Path


async def run_command(
    *args: str,
    cwd: Path | str | None = None,
    timeout: float | None = None,
) -> tuple[str, str, int]:
    """Run a command asynchronously without shell interpolation.

    Output is always captured. A non-zero exit is reported through the
    returned code; deciding what it means is up to the caller.

    Args:
        *args: Command and arguments as separate strings. The first argument
            is the executable, subsequent arguments are passed to it.
        cwd: Working directory for command execution. If None, uses the
            current working directory of the parent process.
        timeout: Maximum seconds to wait for command completion. If exceeded,
            the process is killed and TimeoutError is raised. None means
            wait indefinitely.

    Returns:
        Tuple of (stdout, stderr, return_code) where stdout and stderr are
        decoded UTF-8 strings (with replacement for invalid bytes).

    Raises:
        TimeoutError: If timeout is exceeded. The process is killed
            before this exception is raised.
        FileNotFoundError: If the command executable is not found.
        PermissionError: If the executable cannot be executed.

    Example:
        >>> stdout, _, code = await run_command(
        ...     "claude", "-p", "/specify add login",
        ...     cwd="/path/to/repo",
        ...     timeout=2400,
        ... )
    """
    process = await asyncio.create_subprocess_exec(
        *args,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        process.kill()
        await process.wait()
        raise

    stdout = stdout_bytes.decode("utf-8", errors="replace")
    stderr = stderr_bytes.decode("utf-8", errors="replace")

    return stdout, stderr, process.returncode or 0
