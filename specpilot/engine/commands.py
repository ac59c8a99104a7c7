"""Slash commands handed to the agent for each stage.

The engine treats these strings as opaque; the agent-side command
definitions decide what they mean.
"""

COMMAND_PREFIX = "/specpilot."


def specify_command(feature_description: str) -> str:
    """Command that creates a new spec directory with spec.yaml."""
    return f'{COMMAND_PREFIX}specify "{feature_description}"'


def plan_command(spec_name: str) -> str:
    """Command that writes plan.yaml from spec.yaml."""
    return f"{COMMAND_PREFIX}plan {spec_name}"


def tasks_command(spec_name: str) -> str:
    """Command that writes tasks.yaml from plan.yaml."""
    return f"{COMMAND_PREFIX}tasks {spec_name}"


def implement_command(spec_name: str, phase: int | None = None, task_id: str | None = None) -> str:
    """Command that implements the whole task list, one phase, or one task."""
    command = f"{COMMAND_PREFIX}implement {spec_name}"
    if phase is not None:
        command += f" --phase {phase}"
    if task_id is not None:
        command += f" --task {task_id}"
    return command
