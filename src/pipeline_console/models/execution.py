"""Request and response shapes for validate, execute, status and cancel."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RunStatus(StrEnum):
    """Status values reported for a pipeline run."""

    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"
    CANCELLED = "cancelled"
    INTERRUPTED = "interrupted"


TERMINAL_STATUSES: frozenset[str] = frozenset(
    {
        RunStatus.COMPLETED,
        RunStatus.FAILED,
        RunStatus.ERROR,
        RunStatus.CANCELLED,
        RunStatus.INTERRUPTED,
    }
)
"""Statuses that end the poll loop."""


def is_terminal(status: str) -> bool:
    """Return True when ``status`` ends a run."""
    return status in TERMINAL_STATUSES


class ExecutionPlan(BaseModel):
    """Resolved stage order, including auto-included dependencies."""

    stages: list[str] = Field(default_factory=list)
    resolved_dependencies: list[str] = Field(default_factory=list)


class ValidationResult(BaseModel):
    """Response body of POST /pipelines/validate.

    Attributes:
        valid: Overall pass/fail.
        errors: Per-stage error messages keyed by stage name.
        warnings: Non-fatal findings.
        execution_plan: Plan the service would run, when valid.
    """

    valid: bool
    errors: dict[str, list[str]] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    execution_plan: ExecutionPlan | None = None


class ExecutionResult(BaseModel):
    """Response body of POST /pipelines/execute."""

    pipeline_id: str = ""
    status: str = ""
    error: str | None = None


class Progress(BaseModel):
    """Stage-level progress of a run."""

    completed_stages: int = 0
    total_stages: int = 0
    percent: float = 0


class PipelineStatus(BaseModel):
    """Response body of GET /pipelines/{id}/status.

    Unknown keys (historical context, insights) are preserved untouched.
    """

    model_config = ConfigDict(extra="allow")

    pipeline_id: str
    pipeline: str | None = None
    status: str
    current_stage: str | None = None
    progress: Progress = Field(default_factory=Progress)
    elapsed_seconds: float = 0
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        """True when this snapshot ends the poll loop."""
        return is_terminal(self.status)


class CancelResult(BaseModel):
    """Response body of POST /pipelines/{id}/cancel."""

    success: bool = False


class PipelineHistoryItem(BaseModel):
    """One past run as listed by GET /pipelines/history."""

    model_config = ConfigDict(extra="allow")

    pipeline_id: str
    pipeline: str = ""
    status: str = ""
    started_at: str | None = None
    completed_at: str | None = None
    stages: list[str] = Field(default_factory=list)
    progress: Progress = Field(default_factory=Progress)
    duration_seconds: float | None = None
    exit_code: int | None = None
    error: str | None = None
    error_stage: str | None = None
    config: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None


class PipelineHistoryResponse(BaseModel):
    """Response body of GET /pipelines/history."""

    total: int = 0
    returned: int = 0
    pipelines: list[PipelineHistoryItem] = Field(default_factory=list)


class ServiceHealth(BaseModel):
    """Response body of the pipeline service GET /health."""

    status: str
    version: str = ""
    timestamp: str = ""
    active_pipelines: int = 0
