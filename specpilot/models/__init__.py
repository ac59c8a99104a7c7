"""Core domain models for specpilot.

Key Models:
    - Task: Unit of work executed by the agent
    - Phase: Ordered group of tasks
    - TasksDocument: Parsed tasks.yaml of one spec directory
    - TaskStats: Completion summary
    - SpecMetadata: A numbered spec directory

Enums:
    - TaskStatus: Pending, InProgress, Completed, Blocked
    - PhaseState: Derived phase state

Example:
    >>> from specpilot.models import Task, TaskStatus
    >>> Task(id="T001", title="Init", status=TaskStatus.parse("done")).is_resolved
    True
"""

from specpilot.models.domain import (
    Phase,
    PhaseState,
    PhaseStats,
    SpecMetadata,
    Task,
    TasksDocument,
    TaskStats,
    TaskStatus,
)

__all__ = [
    "Phase",
    "PhaseState",
    "PhaseStats",
    "SpecMetadata",
    "Task",
    "TaskStats",
    "TaskStatus",
    "TasksDocument",
]
