"""
Domain models for the execution engine.

This module contains the data classes and enums representing units of work
(tasks grouped into phases), their status, and the spec directory that owns
them. These models are the normalized internal representation converted from
the tasks.yaml artifact; the engine never string-compares raw statuses.

Example:
    Building a phase by hand::

        phase = Phase(
            number=1,
            title="Setup",
            purpose="Project scaffolding",
            tasks=[Task(id="T001", title="Init repo", status=TaskStatus.COMPLETED)],
        )
        assert phase.is_complete
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class TaskStatus(str, Enum):
    """Task status as written by the agent into tasks.yaml.

    Input is case-insensitive and a few common spellings are accepted (see
    `parse`). Completed and Blocked are terminal: loops never invoke the
    agent for a task in either state.
    """

    PENDING = "Pending"
    """Task has not been started."""

    IN_PROGRESS = "InProgress"
    """Task was started but not finished (e.g. an interrupted session)."""

    COMPLETED = "Completed"
    """Task is done."""

    BLOCKED = "Blocked"
    """Task was explicitly marked as impossible to complete for now."""

    def __str__(self) -> str:
        return self.value

    @property
    def is_resolved(self) -> bool:
        """True for the terminal statuses Completed and Blocked."""
        return self in (TaskStatus.COMPLETED, TaskStatus.BLOCKED)

    @classmethod
    def parse(cls, raw: str) -> "TaskStatus":
        """Normalize a raw status string.

        Args:
            raw: Status as found in the artifact, any case

        Returns:
            The matching TaskStatus

        Raises:
            ValueError: If the string matches no known status

        Example:
            >>> TaskStatus.parse("completed")
            <TaskStatus.COMPLETED: 'Completed'>
            >>> TaskStatus.parse("in-progress")
            <TaskStatus.IN_PROGRESS: 'InProgress'>
        """
        key = raw.strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return _STATUS_ALIASES[key]
        except KeyError:
            raise ValueError(f"unknown task status: {raw!r}") from None


_STATUS_ALIASES: dict[str, TaskStatus] = {
    "pending": TaskStatus.PENDING,
    "todo": TaskStatus.PENDING,
    "inprogress": TaskStatus.IN_PROGRESS,
    "in_progress": TaskStatus.IN_PROGRESS,
    "wip": TaskStatus.IN_PROGRESS,
    "completed": TaskStatus.COMPLETED,
    "complete": TaskStatus.COMPLETED,
    "done": TaskStatus.COMPLETED,
    "blocked": TaskStatus.BLOCKED,
}


class PhaseState(str, Enum):
    """Derived state of a phase, computed from its member tasks."""

    EMPTY = "empty"
    """Phase has no tasks."""

    PENDING = "pending"
    """At least one task is neither Completed nor Blocked."""

    COMPLETE = "complete"
    """Every task is Completed or Blocked and at least one is Completed."""

    FULLY_BLOCKED = "fully_blocked"
    """Every task is Blocked."""

    def __str__(self) -> str:
        return self.value


@dataclass
class Task:
    """A single unit of work delegated to the agent.

    The engine reads only `id`, `status`, `dependencies` and `phase_number`;
    the remaining fields are carried for status reporting.
    """

    id: str
    """Stable unique identifier such as ``T001``."""

    title: str
    """Human readable title."""

    status: TaskStatus = TaskStatus.PENDING
    """Current status, mutated on disk by the agent."""

    dependencies: list[str] = field(default_factory=list)
    """Identifiers of prerequisite tasks, in declaration order."""

    phase_number: int = 0
    """Ordinal of the owning phase."""

    type: str = "implementation"
    parallel: bool = False
    story_id: str | None = None
    file_path: str | None = None
    acceptance_criteria: list[str] = field(default_factory=list)

    @property
    def is_resolved(self) -> bool:
        """True when the task is Completed or Blocked."""
        return self.status.is_resolved


@dataclass
class Phase:
    """An ordered group of tasks sharing a 1-based ordinal."""

    number: int
    title: str
    purpose: str = ""
    tasks: list[Task] = field(default_factory=list)

    @property
    def state(self) -> PhaseState:
        """Derived phase state; never stored."""
        if not self.tasks:
            return PhaseState.EMPTY
        if not all(task.is_resolved for task in self.tasks):
            return PhaseState.PENDING
        if all(task.status == TaskStatus.BLOCKED for task in self.tasks):
            return PhaseState.FULLY_BLOCKED
        return PhaseState.COMPLETE

    @property
    def is_complete(self) -> bool:
        """True iff at least one task exists and every task is Completed or Blocked.

        A fully blocked phase is complete: there is nothing the agent can
        do for it, so loops skip it exactly like a finished phase.
        """
        return self.state in (PhaseState.COMPLETE, PhaseState.FULLY_BLOCKED)

    def count(self, status: TaskStatus) -> int:
        """Number of member tasks with the given status."""
        return sum(1 for task in self.tasks if task.status == status)


@dataclass
class TasksDocument:
    """The parsed unit-of-work set of one spec directory."""

    phases: list[Phase] = field(default_factory=list)
    branch: str | None = None

    @property
    def tasks(self) -> list[Task]:
        """All tasks in declaration order (phase by phase)."""
        return [task for phase in self.phases for task in phase.tasks]

    def get_task(self, task_id: str) -> Task | None:
        """Look up a task by identifier."""
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def get_phase(self, number: int) -> Phase | None:
        """Look up a phase by ordinal."""
        for phase in self.phases:
            if phase.number == number:
                return phase
        return None


@dataclass(frozen=True)
class PhaseStats:
    """Per-phase task counts."""

    number: int
    title: str
    total: int
    completed: int
    blocked: int
    state: PhaseState


@dataclass(frozen=True)
class TaskStats:
    """Summary counts over a TasksDocument, used by the status view."""

    total: int
    completed: int
    in_progress: int
    pending: int
    blocked: int
    total_phases: int
    completed_phases: int
    phases: tuple[PhaseStats, ...] = ()

    @property
    def completion_percentage(self) -> float:
        """Share of Completed tasks; 100 when there are no tasks."""
        if self.total == 0:
            return 100.0
        return self.completed / self.total * 100

    @property
    def is_complete(self) -> bool:
        """True when no task is Pending or InProgress."""
        return self.pending == 0 and self.in_progress == 0

    @classmethod
    def from_document(cls, document: TasksDocument) -> "TaskStats":
        """Compute statistics for a parsed tasks document."""
        tasks = document.tasks

        def count(status: TaskStatus) -> int:
            return sum(1 for task in tasks if task.status == status)

        phases = tuple(
            PhaseStats(
                number=phase.number,
                title=phase.title,
                total=len(phase.tasks),
                completed=phase.count(TaskStatus.COMPLETED),
                blocked=phase.count(TaskStatus.BLOCKED),
                state=phase.state,
            )
            for phase in document.phases
        )
        return cls(
            total=len(tasks),
            completed=count(TaskStatus.COMPLETED),
            in_progress=count(TaskStatus.IN_PROGRESS),
            pending=count(TaskStatus.PENDING),
            blocked=count(TaskStatus.BLOCKED),
            total_phases=len(document.phases),
            completed_phases=sum(1 for phase in document.phases if phase.is_complete),
            phases=phases,
        )


@dataclass(frozen=True)
class SpecMetadata:
    """A spec directory ``NNN-short-name`` under the specs directory.

    The directory name is the workflow instance identifier used as the
    retry scope.
    """

    number: str
    short_name: str
    directory: Path

    @property
    def name(self) -> str:
        """Directory name, e.g. ``003-user-login``."""
        return self.directory.name
