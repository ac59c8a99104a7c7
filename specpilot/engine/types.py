"""Type definitions shared by the unit-of-work loops and the orchestrator.

Example:
    Reading a loop summary::

        summary = await task_loop.run_tasks(spec)
        if summary.interrupted:
            print(f"stopped before {summary.next_unit}, resume with: {summary.resume_hint}")
"""

from dataclasses import dataclass, field


@dataclass
class RunSummary:
    """Aggregated outcome of a unit-of-work loop.

    Units are listed by identifier (task id, or ``phase-N``) in the order
    the loop reached them. A loop that hits an exhausted unit raises
    instead of returning, so a returned summary never contains failures.
    """

    processed: list[str] = field(default_factory=list)
    """Units the agent was invoked for and that validated."""

    skipped_completed: list[str] = field(default_factory=list)
    """Units already Completed (or complete phases) when reached."""

    skipped_blocked: list[str] = field(default_factory=list)
    """Blocked tasks and fully blocked phases."""

    skipped_empty: list[str] = field(default_factory=list)
    """Phases without tasks."""

    deferred: list[str] = field(default_factory=list)
    """Units whose prerequisites were not Completed when reached."""

    interrupted: bool = False
    """True when a stop request ended the loop between units."""

    next_unit: str | None = None
    """First unit not started because of the stop request."""

    resume_hint: str | None = None
    """Command that continues the run from ``next_unit``."""

    @property
    def skipped(self) -> int:
        """Total units skipped without invoking the agent."""
        return len(self.skipped_completed) + len(self.skipped_blocked) + len(self.skipped_empty) + len(self.deferred)

    @property
    def invoked_agent(self) -> bool:
        """True when at least one unit was executed."""
        return bool(self.processed)
