"""ExecutionSession — validation result, run id, status and error log.

Owned by ExecutionController, which applies each operation as one state
transition. Consumers read immutable SessionSnapshot copies.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from pipeline_console.models.execution import PipelineStatus, Progress, RunStatus, ValidationResult


class SessionSnapshot(BaseModel):
    """Point-in-time copy of an ExecutionSession."""

    model_config = ConfigDict(frozen=True)

    validation_result: ValidationResult | None = None
    validation_in_flight: bool = False
    run_id: str | None = None
    status: PipelineStatus | None = None
    execution_in_flight: bool = False
    errors: tuple[str, ...] = Field(default_factory=tuple)


class ExecutionSession:
    """Mutable execution state for one console session.

    ``errors`` only grows through add_error until clear_errors, clear_status
    or reset empties it.
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        """Restore every field to its initial value."""
        self.validation_result: ValidationResult | None = None
        self.validation_in_flight = False
        self.run_id: str | None = None
        self.status: PipelineStatus | None = None
        self.execution_in_flight = False
        self.errors: list[str] = []

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def clear_errors(self) -> None:
        self.errors = []

    def seed_starting_status(self, run_id: str) -> None:
        """Placeholder status shown until the first poll answers."""
        self.status = PipelineStatus(
            pipeline_id=run_id,
            status=RunStatus.STARTING,
            progress=Progress(),
        )

    def clear_status(self) -> None:
        """Forget the current run, its status, the validation result and errors."""
        self.run_id = None
        self.status = None
        self.validation_result = None
        self.errors = []

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            validation_result=self.validation_result,
            validation_in_flight=self.validation_in_flight,
            run_id=self.run_id,
            status=self.status,
            execution_in_flight=self.execution_in_flight,
            errors=tuple(self.errors),
        )
