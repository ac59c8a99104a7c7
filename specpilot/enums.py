"""Enumerations for specpilot stages, agents, and implementation modes."""

from enum import Enum


class Stage(str, Enum):
    """Workflow stages in the fixed order they are executed.

    Each stage consumes the artifact produced by the previous one:
    specify writes spec.yaml, plan reads it and writes plan.yaml, tasks
    writes tasks.yaml, and implement drives the agent through the tasks.
    """

    SPECIFY = "specify"
    PLAN = "plan"
    TASKS = "tasks"
    IMPLEMENT = "implement"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def ordered(cls) -> list["Stage"]:
        """Return all stages in execution order."""
        return [cls.SPECIFY, cls.PLAN, cls.TASKS, cls.IMPLEMENT]


class AgentType(str, Enum):
    """Types of AI agent CLIs specpilot can drive."""

    CLAUDE = "claude"
    CUSTOM = "custom"

    def __str__(self) -> str:
        return self.value


class ImplementMethod(str, Enum):
    """How the implement stage splits work between agent sessions.

    - phases: one agent session per phase
    - tasks: one agent session per task
    - single-session: the whole task list in one agent session
    """

    PHASES = "phases"
    TASKS = "tasks"
    SINGLE_SESSION = "single-session"

    def __str__(self) -> str:
        return self.value
