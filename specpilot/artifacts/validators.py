"""Stage validators.

A validator is a plain callable taking the spec directory a stage worked on
and raising when the resulting artifacts are not acceptable. The stage
executor treats any exception raised here as a validation failure.

Example:
    >>> validate = make_task_completed_validator("T003")
    >>> validate(Path("specs/001-login"))  # raises ValidationFailure if T003 is not done
"""

from collections.abc import Callable
from pathlib import Path

from specpilot.artifacts.loader import (
    get_tasks_file_path,
    load_plan_artifact,
    load_spec_artifact,
    load_tasks_document,
)
from specpilot.artifacts.specs import detect_current_spec
from specpilot.exceptions import ValidationFailure
from specpilot.models.domain import TaskStatus

Validator = Callable[[Path], None]


def validate_spec_artifact(spec_dir: Path) -> None:
    """spec.yaml exists and has feature, user_stories and requirements."""
    load_spec_artifact(spec_dir)


def validate_plan_artifact(spec_dir: Path) -> None:
    """plan.yaml exists and has plan, summary and technical_context."""
    load_plan_artifact(spec_dir)


def validate_tasks_artifact(spec_dir: Path) -> None:
    """tasks.yaml exists and parses into phases of tasks."""
    load_tasks_document(get_tasks_file_path(spec_dir))


def validate_tasks_complete(spec_dir: Path) -> None:
    """Every task in tasks.yaml is Completed or Blocked.

    Raises:
        ValidationFailure: Listing the tasks still open
    """
    document = load_tasks_document(get_tasks_file_path(spec_dir))
    remaining = [task.id for task in document.tasks if not task.is_resolved]
    if remaining:
        raise ValidationFailure(f"{len(remaining)} task(s) not completed: {', '.join(remaining)}")


def make_phase_complete_validator(phase_number: int) -> Validator:
    """Build a validator checking that one phase is complete.

    Args:
        phase_number: 1-based phase ordinal

    Returns:
        Validator raising ValidationFailure while the phase has open tasks
    """

    def validate(spec_dir: Path) -> None:
        document = load_tasks_document(get_tasks_file_path(spec_dir))
        phase = document.get_phase(phase_number)
        if phase is None:
            raise ValidationFailure(f"phase {phase_number} no longer exists in tasks.yaml")
        if not phase.is_complete:
            remaining = [task.id for task in phase.tasks if not task.is_resolved]
            raise ValidationFailure(f"phase {phase_number} has open tasks: {', '.join(remaining)}")

    return validate


def make_task_completed_validator(task_id: str) -> Validator:
    """Build a validator checking that the agent completed one task.

    Only Completed passes. A task the agent marked Blocked is a failed
    attempt and is retried like any other failure.

    Args:
        task_id: Identifier of the task that was executed

    Returns:
        Validator raising ValidationFailure while the task is still open
    """

    def validate(spec_dir: Path) -> None:
        document = load_tasks_document(get_tasks_file_path(spec_dir))
        task = document.get_task(task_id)
        if task is None:
            raise ValidationFailure(f"task {task_id} no longer exists in tasks.yaml")
        if task.status != TaskStatus.COMPLETED:
            raise ValidationFailure(f"task {task_id} did not complete (status: {task.status})")

    return validate


def make_new_spec_validator(specs_dir: Path) -> Validator:
    """Build the specify-stage validator.

    The specify stage creates a new spec directory, so the directory to
    check is not known in advance: the newest spec directory is detected
    and its spec.yaml shape-checked.
    """

    def validate(_: Path) -> None:
        spec = detect_current_spec(specs_dir)
        validate_spec_artifact(spec.directory)

    return validate

