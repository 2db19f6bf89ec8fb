"""Pipeline run execution: session state and the lifecycle controller."""

from pipeline_console.execution.controller import ExecutionController, new_experiment_id
from pipeline_console.execution.session import ExecutionSession, SessionSnapshot

__all__ = ["ExecutionController", "ExecutionSession", "SessionSnapshot", "new_experiment_id"]
