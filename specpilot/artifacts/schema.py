"""Pydantic models describing the shape of the spec, plan and tasks artifacts.

Only the structure the engine depends on is enforced; unknown keys are
allowed so that artifact generators can add fields freely.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Artifact(BaseModel):
    model_config = ConfigDict(extra="allow")


class SpecArtifact(_Artifact):
    """spec.yaml: feature description, user stories and requirements."""

    feature: dict[str, Any]
    user_stories: list[Any]
    requirements: dict[str, Any]


class PlanArtifact(_Artifact):
    """plan.yaml: implementation plan derived from the spec."""

    plan: dict[str, Any]
    summary: str
    technical_context: dict[str, Any]


class TaskEntry(_Artifact):
    """One task inside a phase of tasks.yaml."""

    id: str
    title: str
    status: str = "Pending"
    type: str = "implementation"
    parallel: bool = False
    story_id: str | None = None
    file_path: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    acceptance_criteria: list[str] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def id_not_blank(cls, value: Any) -> str:
        """Accept numeric identifiers and reject empty ones."""
        value = str(value).strip() if value is not None else ""
        if not value:
            raise ValueError("task id must not be empty")
        return value

    @field_validator("dependencies", mode="before")
    @classmethod
    def normalize_dependencies(cls, value: Any) -> Any:
        """Treat null as empty and accept numeric identifiers."""
        if value is None:
            return []
        if isinstance(value, list):
            return [str(item).strip() for item in value]
        return value

    @field_validator("acceptance_criteria", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        """Treat an explicit null list as empty."""
        return [] if value is None else value


class PhaseEntry(_Artifact):
    """One phase of tasks.yaml."""

    number: int = Field(..., ge=1)
    title: str
    purpose: str = ""
    tasks: list[TaskEntry] = Field(default_factory=list)

    @field_validator("tasks", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        """Treat an explicit null task list as empty."""
        return [] if value is None else value


class TasksArtifact(_Artifact):
    """tasks.yaml: phases of tasks produced from the plan."""

    tasks: dict[str, Any]
    summary: dict[str, Any]
    phases: list[PhaseEntry]
