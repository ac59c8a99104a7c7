"""Custom exception hierarchy for the specpilot execution engine.

This module defines a structured exception hierarchy that separates
recoverable stage failures (retried against the retry ledger) from
malformed-input errors that must reach the operator immediately.

Exception Hierarchy:
    SpecPilotError (base, exit code 1)
    ├── ConfigurationError
    ├── ArtifactError
    └── WorkflowError
        ├── StageFailure
        │   ├── ExecutionFailure
        │   │   └── AgentTimeoutError
        │   └── ValidationFailure
        ├── RetryExhaustedError (exit code 2)
        ├── DependencyError
        │   ├── DependencyCycleError
        │   ├── UnknownDependencyError
        │   └── DependencyNotMetError
        └── UnitNotFoundError (exit code 3)

Example Usage:
    >>> from specpilot.exceptions import ArtifactError
    >>> try:
    ...     load_tasks_document(path)
    ... except FileNotFoundError as e:
    ...     raise ArtifactError(f"tasks file not found: {path}") from e
"""

from collections.abc import Sequence


class SpecPilotError(Exception):
    """Base exception for all specpilot errors.

    All custom exceptions inherit from this base class, allowing callers
    to catch every specpilot-specific error with a single except clause.

    Attributes:
        message: Human-readable error description
        exit_code: Process exit code the CLI uses for this error
    """

    exit_code: int = 1

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(SpecPilotError):
    """Configuration-related errors.

    Examples:
        - Invalid YAML syntax
        - Unset environment variable referenced from the config file
        - Out-of-range values such as max_retries above 10
    """

    pass


class ArtifactError(SpecPilotError):
    """A workflow artifact is missing, unreadable, or has the wrong shape.

    Attributes:
        path: Path of the offending artifact, when known
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        """Initialize exception.

        Args:
            message: Error message
            path: Path of the artifact that failed to load
        """
        self.path = path
        full_message = f"{message} ({path})" if path else message
        super().__init__(full_message)
        self.message = message


class WorkflowError(SpecPilotError):
    """Workflow execution errors.

    Examples:
        - No spec directory could be detected
        - A unit failed to advance after a successful agent run
        - The requested phase ordinal is out of range
    """

    pass


class StageFailure(WorkflowError):
    """Base for the recoverable failures counted against the retry ledger.

    Attributes:
        stage: Stage name the failure occurred in
        scope: Workflow instance the stage belongs to
    """

    def __init__(self, message: str, stage: str | None = None, scope: str | None = None) -> None:
        """Initialize exception.

        Args:
            message: Error message
            stage: Stage name the failure occurred in
            scope: Workflow instance identifier
        """
        self.stage = stage
        self.scope = scope

        parts = []
        if scope:
            parts.append(f"scope: {scope}")
        if stage:
            parts.append(f"stage: {stage}")

        full_message = f"{message} ({', '.join(parts)})" if parts else message
        super().__init__(full_message)
        self.message = message


class ExecutionFailure(StageFailure):
    """The agent invocation itself failed.

    Raised for a non-zero exit, a missing executable, or an OS-level error
    while launching the agent.

    Attributes:
        exit_code_returned: Exit status reported by the agent, if it ran
    """

    def __init__(
        self,
        message: str,
        stage: str | None = None,
        scope: str | None = None,
        exit_code_returned: int | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            stage: Stage name
            scope: Workflow instance identifier
            exit_code_returned: Exit status of the agent process
        """
        self.exit_code_returned = exit_code_returned
        super().__init__(message, stage=stage, scope=scope)


class AgentTimeoutError(ExecutionFailure):
    """The agent exceeded its wall-clock timeout and was killed.

    Attributes:
        timeout_seconds: The timeout that was exceeded
        command: The command line that timed out
    """

    def __init__(
        self,
        message: str,
        timeout_seconds: float | None = None,
        command: str | None = None,
        stage: str | None = None,
        scope: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            timeout_seconds: The timeout that was exceeded
            command: Command line that was running
            stage: Stage name
            scope: Workflow instance identifier
        """
        self.timeout_seconds = timeout_seconds
        self.command = command
        if timeout_seconds and "timed out" not in message.lower():
            message = f"{message} (timed out after {timeout_seconds}s)"
        super().__init__(message, stage=stage, scope=scope)


class ValidationFailure(StageFailure):
    """The agent ran, but the resulting artifacts did not pass validation."""

    pass


class RetryExhaustedError(WorkflowError):
    """The configured retry maximum was reached without a success.

    The run is paused rather than failed: `resume_hint` carries the exact
    command that continues from the unit that gave up.

    Attributes:
        scope: Workflow instance identifier
        stage: Stage (or per-unit stage key) that exhausted its retries
        count: Persisted retry count
        max_retries: Configured retry maximum
        resume_hint: Command line that resumes the run, if any
    """

    exit_code = 2

    def __init__(
        self,
        scope: str,
        stage: str,
        count: int,
        max_retries: int,
        cause: str | None = None,
        resume_hint: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            scope: Workflow instance identifier
            stage: Stage name
            count: Retry count at the time of exhaustion
            max_retries: Configured maximum
            cause: Description of the last failure
            resume_hint: Command line that resumes the run
        """
        self.scope = scope
        self.stage = stage
        self.count = count
        self.max_retries = max_retries
        self.cause = cause
        self.resume_hint = resume_hint

        target = f"{scope}:{stage}" if scope else stage
        message = f"retry limit exhausted for {target} ({count}/{max_retries})"
        if cause:
            message = f"{message}: {cause}"
        super().__init__(message)

    def with_resume_hint(self, resume_hint: str) -> "RetryExhaustedError":
        """Return a copy of this error carrying a resume instruction.

        Args:
            resume_hint: Command line that resumes the run

        Returns:
            New RetryExhaustedError with identical counters and the same
            underlying failure as ``__cause__``
        """
        hinted = RetryExhaustedError(
            scope=self.scope,
            stage=self.stage,
            count=self.count,
            max_retries=self.max_retries,
            cause=self.cause,
            resume_hint=resume_hint,
        )
        hinted.__cause__ = self.__cause__
        return hinted


class DependencyError(WorkflowError):
    """Base for task dependency graph errors. These are never retried."""

    pass


class DependencyCycleError(DependencyError):
    """The task graph contains a cycle and cannot be ordered.

    Attributes:
        cycle: Task identifiers participating in the cycle
    """

    def __init__(self, cycle: Sequence[str]) -> None:
        """Initialize exception.

        Args:
            cycle: Identifiers of the tasks that lie on a cycle
        """
        self.cycle = list(cycle)
        super().__init__(f"dependency cycle detected among tasks: {', '.join(self.cycle)}")


class UnknownDependencyError(DependencyError):
    """A task references a prerequisite identifier that does not exist.

    Attributes:
        task_id: Task declaring the dependency
        dependency_id: The identifier that could not be resolved
    """

    def __init__(self, task_id: str, dependency_id: str) -> None:
        """Initialize exception.

        Args:
            task_id: Task declaring the dependency
            dependency_id: Missing prerequisite identifier
        """
        self.task_id = task_id
        self.dependency_id = dependency_id
        super().__init__(f"task {task_id} depends on unknown task {dependency_id}")


class DependencyNotMetError(DependencyError):
    """A targeted task cannot start because its prerequisites are not completed.

    Attributes:
        task_id: Task that was targeted
        unmet: Prerequisites that are not yet Completed
    """

    def __init__(self, task_id: str, unmet: Sequence[str]) -> None:
        """Initialize exception.

        Args:
            task_id: Task that was targeted
            unmet: Prerequisite identifiers not yet Completed
        """
        self.task_id = task_id
        self.unmet = list(unmet)
        super().__init__(f"task {task_id} has unmet dependencies: {', '.join(self.unmet)}")


class UnitNotFoundError(WorkflowError):
    """A resume or target lookup by identifier or ordinal failed.

    Attributes:
        unit: The identifier or ordinal that was requested
        available: Identifiers or ordinals that do exist
    """

    exit_code = 3

    def __init__(self, unit: str, available: Sequence[str] = ()) -> None:
        """Initialize exception.

        Args:
            unit: Requested identifier or ordinal
            available: Valid identifiers or ordinals
        """
        self.unit = unit
        self.available = list(available)
        message = f"unit not found: {unit}"
        if self.available:
            message = f"{message} (available: {', '.join(self.available)})"
        super().__init__(message)
