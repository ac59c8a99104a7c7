"""Pytest configuration and shared fixtures."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import structlog
import yaml

from specpilot.config.settings import SpecPilotSettings
from specpilot.engine.retry_ledger import InMemoryRetryLedger
from specpilot.engine.stage_executor import StageExecutor
from specpilot.models.domain import SpecMetadata
from specpilot.providers.base import AgentProvider, InvocationResult

SPEC_NAME = "001-user-login"

# A scripted step receives the prompt and returns the process outcome.
AgentStep = Callable[[str], InvocationResult]


def make_task(task_id: str, status: str = "Pending", dependencies: list[str] | None = None) -> dict[str, Any]:
    """Task entry as written in tasks.yaml."""
    return {
        "id": task_id,
        "title": f"Task {task_id}",
        "status": status,
        "type": "implementation",
        "parallel": False,
        "story_id": "US-001",
        "file_path": f"src/{task_id.lower()}.py",
        "dependencies": dependencies or [],
        "acceptance_criteria": [f"{task_id} works"],
    }


def write_tasks_yaml(spec_dir: Path, phases: list[list[dict[str, Any]]]) -> Path:
    """Write a tasks.yaml with one phase per inner list of task entries."""
    document = {
        "_meta": {"version": "1.0.0", "artifact_type": "tasks"},
        "tasks": {"branch": spec_dir.name, "spec_path": "spec.yaml", "plan_path": "plan.yaml"},
        "summary": {
            "total_tasks": sum(len(tasks) for tasks in phases),
            "total_phases": len(phases),
        },
        "phases": [
            {
                "number": number,
                "title": f"Phase {number}",
                "purpose": f"Purpose of phase {number}",
                "tasks": tasks,
            }
            for number, tasks in enumerate(phases, start=1)
        ],
    }
    path = spec_dir / "tasks.yaml"
    path.write_text(yaml.safe_dump(document, sort_keys=False))
    return path


def set_task_status(spec_dir: Path, task_ids: list[str], status: str = "Completed") -> None:
    """Rewrite task statuses in tasks.yaml the way the agent would."""
    path = spec_dir / "tasks.yaml"
    document = yaml.safe_load(path.read_text())
    for phase in document["phases"]:
        for task in phase["tasks"]:
            if task["id"] in task_ids:
                task["status"] = status
    path.write_text(yaml.safe_dump(document, sort_keys=False))


def ok() -> InvocationResult:
    return InvocationResult(success=True, exit_code=0, output="done")


def failed(exit_code: int = 1) -> InvocationResult:
    return InvocationResult(success=False, exit_code=exit_code, error="agent crashed")


class ScriptedAgent(AgentProvider):
    """Agent whose invocations follow a script of steps.

    Each invocation consumes the next step; when the script is exhausted
    the default step is used. Every prompt is recorded in `prompts`.
    """

    def __init__(self, steps: list[AgentStep] | None = None, default: AgentStep | None = None) -> None:
        self.steps = list(steps or [])
        self.default = default or (lambda prompt: ok())
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def invoke(self, prompt: str, cwd: Path | None = None, timeout: float | None = None) -> InvocationResult:
        self.prompts.append(prompt)
        step = self.steps.pop(0) if self.steps else self.default
        return step(prompt)


def completes(spec_dir: Path, *task_ids: str, status: str = "Completed") -> AgentStep:
    """Step that marks tasks done and succeeds."""

    def step(prompt: str) -> InvocationResult:
        set_task_status(spec_dir, list(task_ids), status)
        return ok()

    return step


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo logging configuration and bound context left by a test."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def specs_dir(tmp_path: Path) -> Path:
    """Empty specs directory."""
    path = tmp_path / "specs"
    path.mkdir()
    return path


@pytest.fixture
def spec_dir(specs_dir: Path) -> Path:
    """Spec directory ``001-user-login`` without artifacts."""
    path = specs_dir / SPEC_NAME
    path.mkdir()
    return path


@pytest.fixture
def spec(spec_dir: Path) -> SpecMetadata:
    """Metadata for the spec directory fixture."""
    return SpecMetadata(number="001", short_name="user-login", directory=spec_dir)


@pytest.fixture
def ledger() -> InMemoryRetryLedger:
    """In-memory retry ledger."""
    return InMemoryRetryLedger()


@pytest.fixture
def make_executor(ledger: InMemoryRetryLedger, specs_dir: Path) -> Callable[..., StageExecutor]:
    """Factory for stage executors sharing the ledger fixture."""

    def factory(agent: AgentProvider, max_retries: int = 0) -> StageExecutor:
        return StageExecutor(agent, ledger, specs_dir, max_retries=max_retries)

    return factory


@pytest.fixture
def settings(tmp_path: Path, specs_dir: Path) -> SpecPilotSettings:
    """Settings pointing at temporary directories."""
    return SpecPilotSettings(
        workflow={
            "max_retries": 1,
            "specs_dir": str(specs_dir),
            "state_dir": str(tmp_path / "state"),
            "implement_method": "phases",
        },
    )
