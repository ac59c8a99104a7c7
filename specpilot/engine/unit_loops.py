"""
Unit-of-work loops driving the stage executor once per task or phase.

Both loops follow the same rules:

- Units are visited in a fixed order (dependency order for tasks, ordinal
  order for phases), optionally starting from a resume point.
- tasks.yaml is reloaded before every unit because the agent edits it;
  skip and dependency decisions always use the fresh state.
- Completed and Blocked tasks, and complete, fully blocked or empty phases,
  are skipped without invoking the agent.
- A unit whose prerequisites are not Completed is deferred and the loop
  moves on.
- The first unit that exhausts its retries stops the whole loop with a
  `RetryExhaustedError` whose resume hint names that unit. Work done by
  earlier units stays in place.
- A stop request (an `asyncio.Event`) is honoured between units only.

Each unit keeps its own retry record, keyed ``implement:task-<id>`` or
``implement:phase-<n>`` within the spec's scope.
"""

import asyncio

import structlog

from specpilot.artifacts.loader import get_tasks_file_path, load_tasks_document
from specpilot.artifacts.validators import make_phase_complete_validator, make_task_completed_validator
from specpilot.engine.commands import implement_command
from specpilot.engine.resolver import (
    check_references,
    find_task_index,
    order_by_dependencies,
    unmet_dependencies,
)
from specpilot.engine.stage_executor import StageExecutor
from specpilot.engine.types import RunSummary
from specpilot.enums import Stage
from specpilot.exceptions import (
    DependencyNotMetError,
    RetryExhaustedError,
    UnitNotFoundError,
    WorkflowError,
)
from specpilot.models.domain import Phase, PhaseState, SpecMetadata, Task, TasksDocument, TaskStatus

log = structlog.get_logger(__name__)

RESUME_COMMAND = "specpilot implement"


def task_stage_key(task_id: str) -> str:
    """Retry ledger stage name for one task."""
    return f"{Stage.IMPLEMENT}:task-{task_id}"


def phase_stage_key(phase_number: int) -> str:
    """Retry ledger stage name for one phase."""
    return f"{Stage.IMPLEMENT}:phase-{phase_number}"


class _UnitLoop:
    """Shared plumbing for the task and phase loops."""

    def __init__(self, executor: StageExecutor) -> None:
        self.executor = executor

    def _load(self, spec: SpecMetadata) -> TasksDocument:
        return load_tasks_document(get_tasks_file_path(spec.directory))

    @staticmethod
    def _stop_requested(
        stop_event: asyncio.Event | None, summary: RunSummary, next_unit: str, resume_hint: str
    ) -> bool:
        if stop_event is not None and stop_event.is_set():
            summary.interrupted = True
            summary.next_unit = next_unit
            summary.resume_hint = resume_hint
            log.info("loop_stop_requested", next_unit=next_unit, resume_hint=resume_hint)
            return True
        return False


class TaskLoop(_UnitLoop):
    """Executes tasks one agent session at a time in dependency order."""

    async def run_tasks(
        self,
        spec: SpecMetadata,
        from_task: str | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> RunSummary:
        """Execute every open task, optionally resuming from one task.

        Args:
            spec: Spec directory whose tasks.yaml is executed
            from_task: Identifier to resume from; tasks ordered before it
                are not visited
            stop_event: Checked before each task; when set the loop ends

        Returns:
            RunSummary of the loop

        Raises:
            UnitNotFoundError: If ``from_task`` is not in the task set
            DependencyNotMetError: If ``from_task`` is open and one of its
                prerequisites is not Completed
            DependencyCycleError: If the task graph has a cycle
            UnknownDependencyError: If a task references a missing task
            RetryExhaustedError: If a task exhausts its retries
        """
        document = self._load(spec)
        ordered = order_by_dependencies(document.tasks)
        summary = RunSummary()

        start = 0
        if from_task is not None:
            start = find_task_index(ordered, from_task)
            target = ordered[start]
            if not target.is_resolved:
                unmet = unmet_dependencies(target, check_references(document.tasks))
                if unmet:
                    raise DependencyNotMetError(target.id, unmet)

        pending_ids = [task.id for task in ordered[start:]]
        log.info("task_loop_started", spec=spec.name, total=len(ordered), start=start, from_task=from_task)

        for task_id in pending_ids:
            resume_hint = f"{RESUME_COMMAND} --spec {spec.name} --from-task {task_id}"
            if self._stop_requested(stop_event, summary, task_id, resume_hint):
                break

            fresh = self._load(spec)
            tasks_by_id = check_references(fresh.tasks)
            task = tasks_by_id.get(task_id)
            if task is None:
                raise WorkflowError(f"task {task_id} disappeared from tasks.yaml during execution")

            if self._skip_resolved(task, summary):
                continue

            unmet = unmet_dependencies(task, tasks_by_id)
            if unmet:
                log.warning("task_deferred_dependencies_not_met", task_id=task.id, unmet=unmet)
                summary.deferred.append(task.id)
                continue

            await self._execute_task(spec, task)
            summary.processed.append(task.id)

        log.info(
            "task_loop_finished",
            spec=spec.name,
            processed=len(summary.processed),
            skipped=summary.skipped,
            interrupted=summary.interrupted,
        )
        return summary

    async def run_single_task(self, spec: SpecMetadata, task_id: str) -> RunSummary:
        """Execute exactly one task.

        Raises:
            UnitNotFoundError: If the task does not exist
            DependencyNotMetError: If its prerequisites are not Completed
            RetryExhaustedError: If the task exhausts its retries
        """
        document = self._load(spec)
        tasks_by_id = check_references(document.tasks)
        task = tasks_by_id.get(task_id)
        if task is None:
            raise UnitNotFoundError(task_id, list(tasks_by_id))

        summary = RunSummary()
        if self._skip_resolved(task, summary):
            return summary

        unmet = unmet_dependencies(task, tasks_by_id)
        if unmet:
            raise DependencyNotMetError(task.id, unmet)

        await self._execute_task(spec, task)
        summary.processed.append(task.id)
        return summary

    @staticmethod
    def _skip_resolved(task: Task, summary: RunSummary) -> bool:
        if task.status == TaskStatus.COMPLETED:
            log.info("task_skipped_completed", task_id=task.id)
            summary.skipped_completed.append(task.id)
            return True
        if task.status == TaskStatus.BLOCKED:
            log.info("task_skipped_blocked", task_id=task.id)
            summary.skipped_blocked.append(task.id)
            return True
        return False

    async def _execute_task(self, spec: SpecMetadata, task: Task) -> None:
        log.info("task_execution_started", spec=spec.name, task_id=task.id, title=task.title)
        try:
            await self.executor.run_stage(
                spec.name,
                task_stage_key(task.id),
                implement_command(spec.name, task_id=task.id),
                make_task_completed_validator(task.id),
            )
        except RetryExhaustedError as e:
            raise e.with_resume_hint(f"{RESUME_COMMAND} --spec {spec.name} --from-task {task.id}") from e.__cause__
        log.info("task_execution_completed", spec=spec.name, task_id=task.id)


class PhaseLoop(_UnitLoop):
    """Executes phases one agent session at a time in ordinal order."""

    async def run_phases(
        self,
        spec: SpecMetadata,
        from_phase: int | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> RunSummary:
        """Execute every open phase.

        Without ``from_phase`` the loop starts at the first phase that is
        not complete, so re-running after an interruption resumes where
        the previous run stopped.

        Args:
            spec: Spec directory whose tasks.yaml is executed
            from_phase: 1-based ordinal to start from
            stop_event: Checked before each phase; when set the loop ends

        Returns:
            RunSummary of the loop

        Raises:
            UnitNotFoundError: If ``from_phase`` is out of range
            DependencyCycleError: If the task graph has a cycle
            UnknownDependencyError: If a task references a missing task
            RetryExhaustedError: If a phase exhausts its retries
        """
        document = self._load(spec)
        order_by_dependencies(document.tasks)
        summary = RunSummary()
        total = len(document.phases)

        if from_phase is not None:
            self._check_range(from_phase, total)
            start = from_phase
        else:
            first_open = next((phase.number for phase in document.phases if not phase.is_complete), None)
            if first_open is None:
                log.info("all_phases_complete", spec=spec.name, total=total)
                summary.skipped_completed.extend(f"phase-{phase.number}" for phase in document.phases)
                return summary
            start = first_open

        log.info("phase_loop_started", spec=spec.name, total=total, start=start)

        for number in range(start, total + 1):
            unit = f"phase-{number}"
            resume_hint = f"{RESUME_COMMAND} --spec {spec.name} --from-phase {number}"
            if self._stop_requested(stop_event, summary, unit, resume_hint):
                break

            fresh = self._load(spec)
            phase = fresh.get_phase(number)
            if phase is None:
                raise WorkflowError(f"phase {number} disappeared from tasks.yaml during execution")

            if self._skip_resolved(phase, summary):
                continue

            unmet = self._unmet_external_dependencies(phase, fresh)
            if unmet:
                log.warning("phase_deferred_dependencies_not_met", phase=number, unmet=unmet)
                summary.deferred.append(unit)
                continue

            await self._execute_phase(spec, phase)
            summary.processed.append(unit)

        log.info(
            "phase_loop_finished",
            spec=spec.name,
            processed=len(summary.processed),
            skipped=summary.skipped,
            interrupted=summary.interrupted,
        )
        return summary

    async def run_single_phase(self, spec: SpecMetadata, phase_number: int) -> RunSummary:
        """Execute exactly one phase.

        Raises:
            UnitNotFoundError: If the ordinal is out of range
            RetryExhaustedError: If the phase exhausts its retries
        """
        document = self._load(spec)
        order_by_dependencies(document.tasks)
        self._check_range(phase_number, len(document.phases))

        summary = RunSummary()
        phase = document.get_phase(phase_number)
        if phase is None or self._skip_resolved(phase, summary):
            return summary

        await self._execute_phase(spec, phase)
        summary.processed.append(f"phase-{phase_number}")
        return summary

    @staticmethod
    def _check_range(phase_number: int, total: int) -> None:
        if not 1 <= phase_number <= total:
            raise UnitNotFoundError(f"phase {phase_number}", [str(n) for n in range(1, total + 1)])

    @staticmethod
    def _skip_resolved(phase: Phase, summary: RunSummary) -> bool:
        unit = f"phase-{phase.number}"
        state = phase.state
        if state == PhaseState.EMPTY:
            log.info("phase_skipped_empty", phase=phase.number)
            summary.skipped_empty.append(unit)
            return True
        if state == PhaseState.COMPLETE:
            log.info("phase_skipped_complete", phase=phase.number)
            summary.skipped_completed.append(unit)
            return True
        if state == PhaseState.FULLY_BLOCKED:
            log.info("phase_skipped_fully_blocked", phase=phase.number)
            summary.skipped_blocked.append(unit)
            return True
        return False

    @staticmethod
    def _unmet_external_dependencies(phase: Phase, document: TasksDocument) -> list[str]:
        """Prerequisites outside the phase that open tasks of the phase still wait for."""
        tasks_by_id = check_references(document.tasks)
        members = {task.id for task in phase.tasks}
        unmet: list[str] = []
        for task in phase.tasks:
            if task.is_resolved:
                continue
            for dep_id in unmet_dependencies(task, tasks_by_id):
                if dep_id not in members and dep_id not in unmet:
                    unmet.append(dep_id)
        return unmet

    async def _execute_phase(self, spec: SpecMetadata, phase: Phase) -> None:
        log.info(
            "phase_execution_started",
            spec=spec.name,
            phase=phase.number,
            title=phase.title,
            open_tasks=sum(1 for task in phase.tasks if not task.is_resolved),
        )
        try:
            await self.executor.run_stage(
                spec.name,
                phase_stage_key(phase.number),
                implement_command(spec.name, phase=phase.number),
                make_phase_complete_validator(phase.number),
            )
        except RetryExhaustedError as e:
            raise e.with_resume_hint(f"{RESUME_COMMAND} --spec {spec.name} --from-phase {phase.number}") from e.__cause__
        log.info("phase_execution_completed", spec=spec.name, phase=phase.number)
