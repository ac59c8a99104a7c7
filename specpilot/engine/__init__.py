"""Workflow execution engine.

This package turns repeated, unreliable agent invocations into a resumable
pipeline.

Key Components:
    - RetryLedger: Durable per-(scope, stage) retry counters
    - resolver: Dependency ordering and resume-point lookup for tasks
    - StageExecutor: One-attempt stage state machine plus the retry loop
    - TaskLoop / PhaseLoop: Unit-of-work loops over tasks.yaml
    - WorkflowOrchestrator: specify -> plan -> tasks -> implement

Example:
    >>> from specpilot.engine import WorkflowOrchestrator
    >>> orchestrator = WorkflowOrchestrator(settings, agent, FileRetryLedger(settings.state_dir))
    >>> await orchestrator.execute_implement("003-login")
"""

from specpilot.engine.orchestrator import ImplementOptions, WorkflowOrchestrator
from specpilot.engine.retry_ledger import FileRetryLedger, InMemoryRetryLedger, RetryLedger, RetryState
from specpilot.engine.stage_executor import StageExecutor, StageResult, StageState
from specpilot.engine.types import RunSummary
from specpilot.engine.unit_loops import PhaseLoop, TaskLoop

__all__ = [
    "FileRetryLedger",
    "ImplementOptions",
    "InMemoryRetryLedger",
    "PhaseLoop",
    "RetryLedger",
    "RetryState",
    "RunSummary",
    "StageExecutor",
    "StageResult",
    "StageState",
    "TaskLoop",
    "WorkflowOrchestrator",
]
