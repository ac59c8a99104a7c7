"""
Durable retry accounting per (scope, stage).

The retry ledger is pure storage: it loads, saves and resets `RetryState`
records and performs no retry logic itself. Decisions about retrying or
giving up are made by the stage executor, which always loads a record,
mutates it in memory and saves it back.

State File Structure:
    `FileRetryLedger` stores one JSON file per (scope, stage) under
    ``{state_dir}/retry/``. The file name is built from the URL-quoted scope
    and stage so arbitrary identifiers map to safe names::

        {
            "scope": "003-user-login",
            "stage": "implement:task-T004",
            "count": 1,
            "max_retries": 3,
            "last_attempt": "2026-01-15T10:30:00+00:00"
        }

Concurrency Model:
    A single operator process is assumed per scope. Writes are atomic (temp
    file plus rename), so a crash never leaves a half-written record, but
    two processes updating the same scope can lose updates.

Example:
    >>> ledger = FileRetryLedger("~/.specpilot/state")
    >>> state = await ledger.load("003-user-login", "plan", max_retries=3)
    >>> state.increment()
    >>> await ledger.save(state)
"""

import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from urllib.parse import quote

import aiofiles
import structlog

from specpilot.exceptions import RetryExhaustedError, WorkflowError

log = structlog.get_logger(__name__)

# File-name placeholder for the empty scope (stages run before a spec exists).
_EMPTY_SCOPE = "@"
_SEPARATOR = "+"


@dataclass
class RetryState:
    """Retry counter for one (scope, stage) pair.

    Invariant: ``0 <= count <= max_retries``.
    """

    scope: str
    """Workflow instance identifier (spec directory name, may be empty)."""

    stage: str
    """Stage name or per-unit stage key such as ``implement:phase-2``."""

    count: int = 0
    """Failed attempts since the last success."""

    max_retries: int = 0
    """Retries allowed after the first attempt."""

    last_attempt: str | None = None
    """ISO timestamp of the last recorded failure."""

    def can_retry(self) -> bool:
        """True while another failure can be absorbed without exhausting."""
        return self.count < self.max_retries

    def increment(self) -> None:
        """Record one failed attempt.

        Raises:
            RetryExhaustedError: If the count already equals the maximum. The
                count is left unchanged so that it never exceeds the maximum.
        """
        self.last_attempt = datetime.now(UTC).isoformat()
        if self.count >= self.max_retries:
            raise RetryExhaustedError(
                scope=self.scope,
                stage=self.stage,
                count=self.count,
                max_retries=self.max_retries,
            )
        self.count += 1

    def reset(self) -> None:
        """Clear the failure count after a success."""
        self.count = 0
        self.last_attempt = None


class RetryLedger(ABC):
    """Storage contract for retry state.

    Implementations must return a zero-count state for unknown keys, accept
    repeated saves of the same state, and treat resetting an unknown key as
    a no-op.
    """

    @abstractmethod
    async def load(self, scope: str, stage: str, max_retries: int) -> RetryState:
        """Load the state for (scope, stage), adopting ``max_retries``.

        A stored count above a lowered maximum is clamped to it.
        """

    @abstractmethod
    async def save(self, state: RetryState) -> None:
        """Persist the full state."""

    @abstractmethod
    async def reset(self, scope: str, stage: str) -> None:
        """Forget the state for (scope, stage)."""

    @abstractmethod
    async def list_states(self, scope: str) -> list[RetryState]:
        """All stored states of one scope, sorted by stage."""

    @staticmethod
    def _adopt_max(state: RetryState, max_retries: int) -> RetryState:
        state.max_retries = max_retries
        state.count = max(0, min(state.count, max_retries))
        return state


class InMemoryRetryLedger(RetryLedger):
    """Non-durable ledger used in tests."""

    def __init__(self) -> None:
        self._states: dict[tuple[str, str], RetryState] = {}

    async def load(self, scope: str, stage: str, max_retries: int) -> RetryState:
        stored = self._states.get((scope, stage))
        if stored is None:
            return RetryState(scope=scope, stage=stage, max_retries=max_retries)
        return self._adopt_max(RetryState(**asdict(stored)), max_retries)

    async def save(self, state: RetryState) -> None:
        self._states[(state.scope, state.stage)] = RetryState(**asdict(state))

    async def reset(self, scope: str, stage: str) -> None:
        self._states.pop((scope, stage), None)

    async def list_states(self, scope: str) -> list[RetryState]:
        states = [RetryState(**asdict(state)) for (s, _), state in self._states.items() if s == scope]
        return sorted(states, key=lambda state: state.stage)


class FileRetryLedger(RetryLedger):
    """Retry ledger persisted as one JSON file per (scope, stage).

    Attributes:
        retry_dir: Directory holding the record files
    """

    def __init__(self, state_dir: str | Path) -> None:
        """Initialize the ledger, creating its directory if needed.

        Args:
            state_dir: Base state directory; records go to ``retry/`` inside it.
                ``~`` is expanded.
        """
        self.retry_dir = Path(state_dir).expanduser() / "retry"
        self.retry_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, scope: str, stage: str) -> Path:
        scope_part = quote(scope, safe="") if scope else _EMPTY_SCOPE
        return self.retry_dir / f"{scope_part}{_SEPARATOR}{quote(stage, safe='')}.json"

    async def load(self, scope: str, stage: str, max_retries: int) -> RetryState:
        path = self._path(scope, stage)
        if not path.exists():
            return RetryState(scope=scope, stage=stage, max_retries=max_retries)

        state = await self._read(path)
        return self._adopt_max(state, max_retries)

    async def save(self, state: RetryState) -> None:
        path = self._path(state.scope, state.stage)
        tmp_path = path.with_suffix(".tmp")

        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(json.dumps(asdict(state), indent=2))

        tmp_path.replace(path)
        log.debug("retry_state_saved", scope=state.scope, stage=state.stage, count=state.count)

    async def reset(self, scope: str, stage: str) -> None:
        path = self._path(scope, stage)
        if path.exists():
            path.unlink()
            log.debug("retry_state_reset", scope=scope, stage=stage)

    async def list_states(self, scope: str) -> list[RetryState]:
        scope_part = quote(scope, safe="") if scope else _EMPTY_SCOPE
        states = []
        for path in sorted(self.retry_dir.glob(f"{scope_part}{_SEPARATOR}*.json")):
            states.append(await self._read(path))
        return sorted(states, key=lambda state: state.stage)

    async def _read(self, path: Path) -> RetryState:
        try:
            async with aiofiles.open(path) as f:
                data = json.loads(await f.read())
            return RetryState(
                scope=data["scope"],
                stage=data["stage"],
                count=int(data.get("count", 0)),
                max_retries=int(data.get("max_retries", 0)),
                last_attempt=data.get("last_attempt"),
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise WorkflowError(f"corrupt retry state file {path}: {e}") from e
