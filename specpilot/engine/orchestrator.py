"""
Workflow orchestrator sequencing the specify, plan, tasks and implement stages.

This module provides the WorkflowOrchestrator class, the central coordination
point of a specpilot run. Each stage is one agent session validated against
the artifact it must produce, run through the shared `StageExecutor` so that
retry accounting is uniform:

    specify -> spec.yaml -> plan -> plan.yaml -> tasks -> tasks.yaml -> implement

The implement stage is split according to the configured method: a single
agent session for the whole task list, one session per phase, or one
session per task (see `specpilot.engine.unit_loops`).

Example:
    >>> orchestrator = WorkflowOrchestrator(settings, agent, FileRetryLedger(settings.state_dir))
    >>> result = await orchestrator.run_full_workflow("Add user login")
    >>> result.spec_name
    '004-add-user-login'
"""

import asyncio
from dataclasses import dataclass, field

import structlog

from specpilot.artifacts.loader import get_tasks_file_path, load_tasks_document
from specpilot.artifacts.specs import detect_current_spec, get_spec_metadata
from specpilot.artifacts.validators import (
    Validator,
    make_new_spec_validator,
    validate_plan_artifact,
    validate_tasks_artifact,
    validate_tasks_complete,
)
from specpilot.config.settings import SpecPilotSettings
from specpilot.engine.commands import implement_command, plan_command, specify_command, tasks_command
from specpilot.engine.resolver import order_by_dependencies
from specpilot.engine.retry_ledger import RetryLedger, RetryState
from specpilot.engine.stage_executor import StageExecutor
from specpilot.engine.types import RunSummary
from specpilot.engine.unit_loops import PhaseLoop, TaskLoop
from specpilot.enums import ImplementMethod, Stage
from specpilot.exceptions import ArtifactError, RetryExhaustedError
from specpilot.models.domain import SpecMetadata, TaskStats
from specpilot.providers.base import AgentProvider
from specpilot.utils.logging_config import bind_workflow_context

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ImplementOptions:
    """How the implement stage should run.

    At most one of ``phase``, ``from_phase`` and ``from_task`` may be set.
    ``phase`` and ``from_phase`` imply the phases method, ``from_task``
    implies the tasks method; otherwise ``method`` (or the configured
    default when None) applies.
    """

    method: ImplementMethod | None = None
    phase: int | None = None
    from_phase: int | None = None
    from_task: str | None = None

    def __post_init__(self) -> None:
        targets = [value for value in (self.phase, self.from_phase, self.from_task) if value is not None]
        if len(targets) > 1:
            raise ValueError("only one of phase, from_phase and from_task may be given")
        if self.from_task is not None and self.method not in (None, ImplementMethod.TASKS):
            raise ValueError("from_task requires the tasks method")
        if (self.phase is not None or self.from_phase is not None) and self.method not in (
            None,
            ImplementMethod.PHASES,
        ):
            raise ValueError("phase selection requires the phases method")

    def resolve_method(self, default: ImplementMethod) -> ImplementMethod:
        """Method implied by the options, falling back to ``default``."""
        if self.phase is not None or self.from_phase is not None:
            return ImplementMethod.PHASES
        if self.from_task is not None:
            return ImplementMethod.TASKS
        return self.method or default


@dataclass
class WorkflowResult:
    """Outcome of a multi-stage run."""

    spec_name: str
    stages_completed: list[Stage] = field(default_factory=list)
    implement_summary: RunSummary | None = None


@dataclass(frozen=True)
class SpecStatus:
    """Snapshot of one spec for the status view."""

    spec: SpecMetadata
    stats: TaskStats | None
    retry_states: list[RetryState]
    artifacts: dict[str, bool]


class WorkflowOrchestrator:
    """Orchestrate the specify, plan, tasks and implement stages.

    Attributes:
        settings: specpilot configuration
        executor: Stage executor shared by every stage and loop
        task_loop: Per-task implement loop
        phase_loop: Per-phase implement loop
        stop_event: Set to stop the implement loops between units
    """

    def __init__(
        self,
        settings: SpecPilotSettings,
        agent: AgentProvider,
        ledger: RetryLedger,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            settings: specpilot configuration (retry limit, directories, timeout)
            agent: Agent provider invoked for every stage
            ledger: Retry state storage
            stop_event: Optional event honoured between implement units
        """
        self.settings = settings
        self.specs_dir = settings.specs_dir
        self.executor = StageExecutor(
            agent,
            ledger,
            self.specs_dir,
            max_retries=settings.workflow.max_retries,
            timeout=settings.agent.timeout_seconds,
        )
        self.task_loop = TaskLoop(self.executor)
        self.phase_loop = PhaseLoop(self.executor)
        self.stop_event = stop_event

    def resolve_spec(self, spec_name: str | None = None) -> SpecMetadata:
        """Find a spec by name or number, or the newest one when None.

        Raises:
            UnitNotFoundError: If the named spec does not exist
            WorkflowError: If no spec exists at all
        """
        if spec_name:
            return get_spec_metadata(self.specs_dir, spec_name)
        return detect_current_spec(self.specs_dir)

    async def execute_specify(self, feature_description: str) -> str:
        """Create a new spec directory from a feature description.

        The retry record of the specify stage is reset first: each call
        describes a new feature, so earlier failures do not count against it.

        Returns:
            Name of the created spec directory

        Raises:
            RetryExhaustedError: If the stage exhausted its retries
        """
        await self.executor.reset_stage("", str(Stage.SPECIFY))
        try:
            await self.executor.run_stage(
                "",
                str(Stage.SPECIFY),
                specify_command(feature_description),
                make_new_spec_validator(self.specs_dir),
            )
        except RetryExhaustedError as e:
            raise e.with_resume_hint(f'specpilot specify "{feature_description}"') from e.__cause__

        spec = detect_current_spec(self.specs_dir)
        log.info("spec_created", spec=spec.name)
        return spec.name

    async def execute_plan(self, spec_name: str | None = None) -> str:
        """Produce plan.yaml for a spec.

        Returns:
            Name of the spec that was planned

        Raises:
            ArtifactError: If spec.yaml is missing
            RetryExhaustedError: If the stage exhausted its retries
        """
        spec = self.resolve_spec(spec_name)
        self._require_artifact(spec, "spec.yaml", Stage.PLAN)
        await self._run_single_stage(spec, Stage.PLAN, plan_command(spec.name), validate_plan_artifact)
        return spec.name

    async def execute_tasks(self, spec_name: str | None = None) -> str:
        """Produce tasks.yaml for a spec.

        Besides the shape check, the produced task graph must be orderable;
        a cycle or unknown reference is reported immediately.

        Returns:
            Name of the spec whose tasks were generated

        Raises:
            ArtifactError: If plan.yaml is missing
            RetryExhaustedError: If the stage exhausted its retries
            DependencyCycleError: If the generated tasks contain a cycle
            UnknownDependencyError: If a task references a missing task
        """
        spec = self.resolve_spec(spec_name)
        self._require_artifact(spec, "plan.yaml", Stage.TASKS)
        await self._run_single_stage(spec, Stage.TASKS, tasks_command(spec.name), validate_tasks_artifact)

        document = load_tasks_document(get_tasks_file_path(spec.directory))
        order_by_dependencies(document.tasks)
        log.info(
            "tasks_generated",
            spec=spec.name,
            phases=len(document.phases),
            tasks=len(document.tasks),
        )
        return spec.name

    async def execute_implement(
        self,
        spec_name: str | None = None,
        options: ImplementOptions | None = None,
    ) -> RunSummary:
        """Drive the agent through the task list of a spec.

        Args:
            spec_name: Spec to implement; the newest spec when None
            options: Mode and resume point

        Returns:
            RunSummary of the loop (or of the single session)

        Raises:
            ArtifactError: If tasks.yaml is missing or malformed
            UnitNotFoundError: If a resume target does not exist
            DependencyCycleError: If the task graph has a cycle
            RetryExhaustedError: If a unit exhausted its retries
        """
        options = options or ImplementOptions()
        spec = self.resolve_spec(spec_name)
        bind_workflow_context(spec=spec.name)
        self._require_artifact(spec, "tasks.yaml", Stage.IMPLEMENT)

        method = options.resolve_method(self.settings.workflow.implement_method)
        log.info("implement_started", spec=spec.name, method=str(method))

        if method == ImplementMethod.TASKS:
            return await self.task_loop.run_tasks(spec, from_task=options.from_task, stop_event=self.stop_event)

        if method == ImplementMethod.PHASES:
            if options.phase is not None:
                return await self.phase_loop.run_single_phase(spec, options.phase)
            return await self.phase_loop.run_phases(spec, from_phase=options.from_phase, stop_event=self.stop_event)

        return await self._implement_single_session(spec)

    async def run_prepare_workflow(self, feature_description: str) -> WorkflowResult:
        """Run specify, plan and tasks without implementing."""
        spec_name = await self.execute_specify(feature_description)
        result = WorkflowResult(spec_name=spec_name, stages_completed=[Stage.SPECIFY])

        await self.execute_plan(spec_name)
        result.stages_completed.append(Stage.PLAN)

        await self.execute_tasks(spec_name)
        result.stages_completed.append(Stage.TASKS)

        log.info("prepare_workflow_completed", spec=spec_name)
        return result

    async def run_full_workflow(
        self,
        feature_description: str,
        options: ImplementOptions | None = None,
    ) -> WorkflowResult:
        """Run every stage in order, each consuming the previous stage's artifact."""
        result = await self.run_prepare_workflow(feature_description)

        result.implement_summary = await self.execute_implement(result.spec_name, options)
        result.stages_completed.append(Stage.IMPLEMENT)

        log.info("full_workflow_completed", spec=result.spec_name)
        return result

    async def get_status(self, spec_name: str | None = None) -> SpecStatus:
        """Collect artifact presence, task statistics and retry counts for a spec."""
        spec = self.resolve_spec(spec_name)
        artifacts = {name: (spec.directory / name).exists() for name in ("spec.yaml", "plan.yaml", "tasks.yaml")}

        stats = None
        if artifacts["tasks.yaml"]:
            stats = TaskStats.from_document(load_tasks_document(get_tasks_file_path(spec.directory)))

        retry_states = await self.executor.ledger.list_states(spec.name)
        return SpecStatus(spec=spec, stats=stats, retry_states=retry_states, artifacts=artifacts)

    async def reset_retries(self, spec_name: str | None = None, stage: str | None = None) -> list[str]:
        """Clear retry records of a spec.

        Args:
            spec_name: Spec whose records are cleared; the newest when None
            stage: Only this stage key; every record of the spec when None

        Returns:
            Stage keys that were reset
        """
        spec = self.resolve_spec(spec_name)
        if stage is not None:
            stages = [stage]
        else:
            stages = [state.stage for state in await self.executor.ledger.list_states(spec.name)]

        for name in stages:
            await self.executor.reset_stage(spec.name, name)
        return stages

    async def _implement_single_session(self, spec: SpecMetadata) -> RunSummary:
        summary = RunSummary()
        document = load_tasks_document(get_tasks_file_path(spec.directory))
        order_by_dependencies(document.tasks)

        if TaskStats.from_document(document).is_complete:
            log.info("all_tasks_complete", spec=spec.name)
            summary.skipped_completed.extend(task.id for task in document.tasks)
            return summary

        await self._run_single_stage(spec, Stage.IMPLEMENT, implement_command(spec.name), validate_tasks_complete)
        summary.processed.append(spec.name)
        return summary

    async def _run_single_stage(self, spec: SpecMetadata, stage: Stage, prompt: str, validate: Validator) -> None:
        try:
            await self.executor.run_stage(spec.name, str(stage), prompt, validate)
        except RetryExhaustedError as e:
            hint = f"specpilot {stage} --spec {spec.name}"
            if stage == Stage.IMPLEMENT:
                hint = f"{hint} --single-session"
            raise e.with_resume_hint(hint) from e.__cause__

    @staticmethod
    def _require_artifact(spec: SpecMetadata, name: str, stage: Stage) -> None:
        path = spec.directory / name
        if not path.exists():
            raise ArtifactError(f"{name} is required before the {stage} stage", path=str(path))
