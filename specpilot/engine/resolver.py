"""Dependency resolution for task execution order.

Produces a deterministic topological order over a task set, locates the
first unresolved task (the safe resume point), and checks whether a single
task's prerequisites are satisfied. Malformed graphs (cycles, references to
unknown tasks) raise immediately and are never retried.
"""

import heapq
from collections.abc import Mapping, Sequence

import structlog

from specpilot.exceptions import DependencyCycleError, UnitNotFoundError, UnknownDependencyError
from specpilot.models.domain import Task, TaskStatus

log = structlog.get_logger(__name__)


def check_references(tasks: Sequence[Task]) -> dict[str, Task]:
    """Index tasks by identifier and verify every dependency exists.

    Args:
        tasks: Tasks in declaration order

    Returns:
        Mapping of task identifier to task

    Raises:
        UnknownDependencyError: If a task references a missing identifier
    """
    by_id = {task.id: task for task in tasks}
    for task in tasks:
        for dep_id in task.dependencies:
            if dep_id not in by_id:
                log.error("unknown_dependency", task_id=task.id, dependency=dep_id)
                raise UnknownDependencyError(task.id, dep_id)
    return by_id


def order_by_dependencies(tasks: Sequence[Task]) -> list[Task]:
    """Order tasks so every task follows all of its prerequisites.

    Among tasks that are free to run, the one declared first is emitted
    first, so the same input always yields the same sequence and a graph
    without dependencies keeps its declaration order.

    Args:
        tasks: Tasks in declaration order

    Returns:
        New list in topological order

    Raises:
        UnknownDependencyError: If a task references a missing identifier
        DependencyCycleError: If no valid order exists; no partial order
            is returned

    Example:
        >>> t1 = Task(id="T1", title="a")
        >>> t2 = Task(id="T2", title="b", dependencies=["T1"])
        >>> [t.id for t in order_by_dependencies([t2, t1])]
        ['T1', 'T2']
    """
    check_references(tasks)

    position = {task.id: index for index, task in enumerate(tasks)}
    remaining = {task.id: len(set(task.dependencies)) for task in tasks}
    dependents: dict[str, list[str]] = {task.id: [] for task in tasks}
    for task in tasks:
        for dep_id in set(task.dependencies):
            dependents[dep_id].append(task.id)

    ready = [position[task_id] for task_id, count in remaining.items() if count == 0]
    heapq.heapify(ready)

    ordered: list[Task] = []
    while ready:
        task = tasks[heapq.heappop(ready)]
        ordered.append(task)
        for dependent_id in dependents[task.id]:
            remaining[dependent_id] -= 1
            if remaining[dependent_id] == 0:
                heapq.heappush(ready, position[dependent_id])

    if len(ordered) != len(tasks):
        emitted = {task.id for task in ordered}
        unordered = [task for task in tasks if task.id not in emitted]
        cycle = _cycle_members(unordered)
        log.error("dependency_cycle_detected", tasks=cycle, unordered=[task.id for task in unordered])
        raise DependencyCycleError(cycle)

    return ordered


def _cycle_members(unordered: Sequence[Task]) -> list[str]:
    """Tasks that can reach themselves through dependencies, in declaration order.

    Tasks that merely wait on a cycle are left out.
    """
    ids = {task.id for task in unordered}
    deps = {task.id: [dep_id for dep_id in set(task.dependencies) if dep_id in ids] for task in unordered}

    def reaches_itself(start: str) -> bool:
        seen: set[str] = set()
        stack = list(deps[start])
        while stack:
            node = stack.pop()
            if node == start:
                return True
            if node not in seen:
                seen.add(node)
                stack.extend(deps[node])
        return False

    return [task.id for task in unordered if reaches_itself(task.id)]


def first_unsatisfied(ordered: Sequence[Task]) -> int | None:
    """Index of the first task that is neither Completed nor Blocked.

    Args:
        ordered: Tasks in execution order

    Returns:
        Position of the first unresolved task, or None when all are resolved
    """
    for index, task in enumerate(ordered):
        if not task.is_resolved:
            return index
    return None


def unmet_dependencies(task: Task, tasks_by_id: Mapping[str, Task]) -> list[str]:
    """Prerequisites of ``task`` whose status is not Completed.

    A Blocked prerequisite is unmet: only Completed satisfies a dependency.

    Raises:
        UnknownDependencyError: If a prerequisite is not in ``tasks_by_id``
    """
    unmet = []
    for dep_id in task.dependencies:
        dependency = tasks_by_id.get(dep_id)
        if dependency is None:
            raise UnknownDependencyError(task.id, dep_id)
        if dependency.status != TaskStatus.COMPLETED:
            unmet.append(dep_id)
    return unmet


def dependencies_met(task: Task, tasks_by_id: Mapping[str, Task]) -> bool:
    """True iff every prerequisite of ``task`` is Completed."""
    return not unmet_dependencies(task, tasks_by_id)


def find_task_index(ordered: Sequence[Task], task_id: str) -> int:
    """Position of ``task_id`` in ``ordered``.

    Raises:
        UnitNotFoundError: Listing the available identifiers
    """
    for index, task in enumerate(ordered):
        if task.id == task_id:
            return index
    raise UnitNotFoundError(task_id, [task.id for task in ordered])
