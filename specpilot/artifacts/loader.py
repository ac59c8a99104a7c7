"""Loading of workflow artifacts from a spec directory.

Artifacts are small YAML documents rewritten by the agent between engine
steps, so they are always read fresh from disk; nothing here caches.
"""

from pathlib import Path
from typing import Any, TypeVar

import structlog
import yaml
from pydantic import BaseModel, ValidationError

from specpilot.artifacts.schema import PlanArtifact, SpecArtifact, TasksArtifact
from specpilot.exceptions import ArtifactError
from specpilot.models.domain import Phase, Task, TasksDocument, TaskStatus

log = structlog.get_logger(__name__)

SPEC_FILE = "spec.yaml"
PLAN_FILE = "plan.yaml"
TASKS_FILE = "tasks.yaml"

ArtifactT = TypeVar("ArtifactT", bound=BaseModel)


def get_tasks_file_path(spec_dir: Path) -> Path:
    """Return the tasks.yaml path inside a spec directory."""
    return spec_dir / TASKS_FILE


def read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML mapping from disk.

    Args:
        path: File to read

    Returns:
        The parsed mapping

    Raises:
        ArtifactError: If the file is missing, unreadable, not YAML, or not a mapping
    """
    if not path.exists():
        raise ArtifactError("artifact not found", path=str(path))

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ArtifactError(f"cannot read artifact: {e}", path=str(path)) from e
    except yaml.YAMLError as e:
        raise ArtifactError(f"invalid YAML syntax: {e}", path=str(path)) from e

    if not isinstance(data, dict):
        raise ArtifactError("artifact must be a YAML mapping", path=str(path))
    return data


def parse_artifact(path: Path, model: type[ArtifactT]) -> ArtifactT:
    """Read a YAML artifact and check it against a pydantic model.

    Args:
        path: File to read
        model: Artifact model describing the required shape

    Returns:
        Validated model instance

    Raises:
        ArtifactError: If the file cannot be read or has the wrong shape
    """
    data = read_yaml(path)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}" for error in e.errors()
        )
        raise ArtifactError(f"invalid {path.name}: {problems}", path=str(path)) from e


def load_spec_artifact(spec_dir: Path) -> SpecArtifact:
    """Load and shape-check spec.yaml."""
    return parse_artifact(spec_dir / SPEC_FILE, SpecArtifact)


def load_plan_artifact(spec_dir: Path) -> PlanArtifact:
    """Load and shape-check plan.yaml."""
    return parse_artifact(spec_dir / PLAN_FILE, PlanArtifact)


def load_tasks_document(path: Path) -> TasksDocument:
    """Load tasks.yaml into the domain model.

    Statuses are normalized through `TaskStatus.parse`, so ``completed``,
    ``Completed`` and ``done`` all become ``TaskStatus.COMPLETED``.

    Args:
        path: Path to tasks.yaml

    Returns:
        Parsed TasksDocument with phases in file order

    Raises:
        ArtifactError: If the file is unreadable, malformed, contains an
            unknown status, duplicate task identifiers, or phase ordinals
            that are not contiguous from 1
    """
    artifact = parse_artifact(path, TasksArtifact)

    phases: list[Phase] = []
    seen: set[str] = set()
    for expected, entry in enumerate(artifact.phases, start=1):
        if entry.number != expected:
            raise ArtifactError(
                f"phase numbers must be contiguous from 1: expected {expected}, got {entry.number}",
                path=str(path),
            )

        tasks: list[Task] = []
        for item in entry.tasks:
            if item.id in seen:
                raise ArtifactError(f"duplicate task id: {item.id}", path=str(path))
            seen.add(item.id)

            try:
                status = TaskStatus.parse(item.status)
            except ValueError as e:
                raise ArtifactError(f"task {item.id}: {e}", path=str(path)) from e

            tasks.append(
                Task(
                    id=item.id,
                    title=item.title,
                    status=status,
                    dependencies=list(item.dependencies),
                    phase_number=entry.number,
                    type=item.type,
                    parallel=item.parallel,
                    story_id=item.story_id,
                    file_path=item.file_path,
                    acceptance_criteria=list(item.acceptance_criteria),
                )
            )

        phases.append(Phase(number=entry.number, title=entry.title, purpose=entry.purpose, tasks=tasks))

    document = TasksDocument(phases=phases, branch=artifact.tasks.get("branch"))
    log.debug("tasks_document_loaded", path=str(path), phases=len(phases), tasks=len(seen))
    return document
