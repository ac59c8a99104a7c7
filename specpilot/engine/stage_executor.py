"""
Stage execution state machine.

One call to `StageExecutor.execute_stage` performs exactly one attempt of a
stage: invoke the agent, validate the resulting artifacts, and record the
outcome in the retry ledger::

    NOT_STARTED -> EXECUTING -> VALIDATING -> SUCCEEDED
                       |             |
                       +-------------+--> RETRY_PENDING | EXHAUSTED

Execution and validation failures are recovered locally: they only
increment the ledger until the configured maximum is exceeded, at which
point the result is EXHAUSTED and carries a `RetryExhaustedError`. Looping
over attempts is left to the caller (`run_stage` is the standard loop), so
progress can be reported between attempts.

Retry arithmetic:
    A fresh scope starts at count 0. After N consecutive failures with
    ``max_retries = M`` the result is RETRY_PENDING with ``retry_count = N``
    while N <= M, and EXHAUSTED once N > M. The stored count never exceeds
    M. A success resets the count to 0.

Example:
    >>> executor = StageExecutor(agent, FileRetryLedger(state_dir), Path("specs"), max_retries=2)
    >>> result = await executor.run_stage("003-login", "plan", "/specpilot.plan", validate_plan_artifact)
    >>> result.success
    True
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import cast

import structlog

from specpilot.artifacts.validators import Validator
from specpilot.engine.retry_ledger import RetryLedger, RetryState
from specpilot.exceptions import (
    AgentTimeoutError,
    ExecutionFailure,
    RetryExhaustedError,
    SpecPilotError,
    StageFailure,
    ValidationFailure,
)
from specpilot.providers.base import AgentProvider

log = structlog.get_logger(__name__)

_STDERR_TAIL = 500


class StageState(str, Enum):
    """States of a single stage attempt."""

    NOT_STARTED = "not_started"
    EXECUTING = "executing"
    VALIDATING = "validating"
    SUCCEEDED = "succeeded"
    RETRY_PENDING = "retry_pending"
    EXHAUSTED = "exhausted"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class StageResult:
    """Outcome of one `execute_stage` call. Never mutated after construction."""

    stage: str
    """Stage name or per-unit stage key."""

    scope: str
    """Workflow instance identifier."""

    state: StageState
    """Terminal state of this attempt."""

    retry_count: int
    """Ledger count after this attempt (0 after a success)."""

    error: SpecPilotError | None = None
    """The failure for RETRY_PENDING, a RetryExhaustedError for EXHAUSTED."""

    @property
    def success(self) -> bool:
        return self.state == StageState.SUCCEEDED

    @property
    def exhausted(self) -> bool:
        return self.state == StageState.EXHAUSTED

    @property
    def total_attempts(self) -> int:
        """Attempts made so far as shown to an operator."""
        return self.retry_count + 1


class StageExecutor:
    """Run stages against the agent with persisted retry accounting.

    The executor never touches retry storage directly; everything goes
    through the injected `RetryLedger`, and the agent is reached only
    through the `AgentProvider` capability.

    Attributes:
        agent: Agent used for every attempt
        ledger: Retry state storage
        specs_dir: Directory holding spec directories; a stage's scope
            directory is ``specs_dir / scope``
        max_retries: Retries allowed after the first attempt
        timeout: Agent timeout in seconds, None for no limit
        working_dir: Directory the agent runs in
    """

    def __init__(
        self,
        agent: AgentProvider,
        ledger: RetryLedger,
        specs_dir: Path,
        max_retries: int = 0,
        timeout: float | None = None,
        working_dir: Path | None = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.agent = agent
        self.ledger = ledger
        self.specs_dir = Path(specs_dir)
        self.max_retries = max_retries
        self.timeout = timeout
        self.working_dir = working_dir

    def spec_dir(self, scope: str) -> Path:
        """Directory a stage of ``scope`` works on."""
        return self.specs_dir / scope if scope else self.specs_dir

    async def execute_stage(self, scope: str, stage: str, prompt: str, validate: Validator) -> StageResult:
        """Perform one attempt of a stage.

        Args:
            scope: Workflow instance identifier (empty before a spec exists)
            stage: Stage name or per-unit stage key
            prompt: Opaque command handed to the agent
            validate: Called with the scope directory after a successful run;
                any exception it raises is a validation failure

        Returns:
            StageResult in state SUCCEEDED, RETRY_PENDING or EXHAUSTED
        """
        state = await self.ledger.load(scope, stage, self.max_retries)
        log.info(
            "stage_attempt_started",
            scope=scope,
            stage=stage,
            attempt=state.count + 1,
            max_attempts=self.max_retries + 1,
        )

        self._transition(scope, stage, StageState.EXECUTING)
        failure = await self._invoke(scope, stage, prompt)

        if failure is None:
            self._transition(scope, stage, StageState.VALIDATING)
            try:
                validate(self.spec_dir(scope))
            except Exception as e:
                failure = ValidationFailure(f"validation failed: {e}", stage=stage, scope=scope)

        if failure is not None:
            return await self._record_failure(state, failure)

        await self.ledger.reset(scope, stage)
        self._transition(scope, stage, StageState.SUCCEEDED)
        log.info("stage_succeeded", scope=scope, stage=stage, attempts=state.count + 1)
        return StageResult(stage=stage, scope=scope, state=StageState.SUCCEEDED, retry_count=0)

    async def run_stage(self, scope: str, stage: str, prompt: str, validate: Validator) -> StageResult:
        """Attempt a stage until it succeeds or its retries are exhausted.

        Args:
            scope: Workflow instance identifier
            stage: Stage name or per-unit stage key
            prompt: Opaque command handed to the agent
            validate: Validator for the stage's artifacts

        Returns:
            The successful StageResult

        Raises:
            RetryExhaustedError: When the retry maximum was exceeded
        """
        while True:
            result = await self.execute_stage(scope, stage, prompt, validate)
            if result.success:
                return result
            if result.exhausted:
                raise cast(RetryExhaustedError, result.error)
            log.info(
                "stage_retrying",
                scope=scope,
                stage=stage,
                retry=result.retry_count,
                max_retries=self.max_retries,
                error=str(result.error),
            )

    async def reset_stage(self, scope: str, stage: str) -> None:
        """Clear the retry count of one stage."""
        await self.ledger.reset(scope, stage)
        log.info("stage_retries_reset", scope=scope, stage=stage)

    async def get_retry_state(self, scope: str, stage: str) -> RetryState:
        """Current retry state of one stage."""
        return await self.ledger.load(scope, stage, self.max_retries)

    async def _invoke(self, scope: str, stage: str, prompt: str) -> StageFailure | None:
        try:
            result = await self.agent.invoke(prompt, cwd=self.working_dir, timeout=self.timeout)
        except AgentTimeoutError as e:
            return AgentTimeoutError(
                e.message, timeout_seconds=e.timeout_seconds, command=e.command, stage=stage, scope=scope
            )
        except ExecutionFailure as e:
            return ExecutionFailure(f"command execution failed: {e.message}", stage=stage, scope=scope)
        except OSError as e:
            return ExecutionFailure(f"command execution failed: {e}", stage=stage, scope=scope)

        if result.success:
            return None

        message = f"command execution failed: exit status {result.exit_code}"
        if result.error:
            message = f"{message}: {result.error.strip()[-_STDERR_TAIL:]}"
        return ExecutionFailure(message, stage=stage, scope=scope, exit_code_returned=result.exit_code)

    async def _record_failure(self, state: RetryState, failure: StageFailure) -> StageResult:
        try:
            state.increment()
        except RetryExhaustedError:
            await self.ledger.save(state)
            error = RetryExhaustedError(
                scope=state.scope,
                stage=state.stage,
                count=state.count,
                max_retries=state.max_retries,
                cause=str(failure),
            )
            error.__cause__ = failure
            self._transition(state.scope, state.stage, StageState.EXHAUSTED)
            log.error(
                "stage_retries_exhausted",
                scope=state.scope,
                stage=state.stage,
                count=state.count,
                max_retries=state.max_retries,
                error=str(failure),
            )
            return StageResult(
                stage=state.stage,
                scope=state.scope,
                state=StageState.EXHAUSTED,
                retry_count=state.count,
                error=error,
            )

        await self.ledger.save(state)
        self._transition(state.scope, state.stage, StageState.RETRY_PENDING)
        log.warning(
            "stage_attempt_failed",
            scope=state.scope,
            stage=state.stage,
            retry_count=state.count,
            max_retries=state.max_retries,
            error=str(failure),
        )
        return StageResult(
            stage=state.stage,
            scope=state.scope,
            state=StageState.RETRY_PENDING,
            retry_count=state.count,
            error=failure,
        )

    @staticmethod
    def _transition(scope: str, stage: str, new_state: StageState) -> None:
        log.debug("stage_state_changed", scope=scope, stage=stage, state=str(new_state))
