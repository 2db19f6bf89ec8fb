"""Wire models for the pipeline service contract."""

from pipeline_console.models.catalog import Pipeline, Stage, StagesResponse
from pipeline_console.models.execution import (
    TERMINAL_STATUSES,
    CancelResult,
    ExecutionPlan,
    ExecutionResult,
    PipelineHistoryItem,
    PipelineHistoryResponse,
    PipelineStatus,
    Progress,
    RunStatus,
    ServiceHealth,
    ValidationResult,
    is_terminal,
)
from pipeline_console.models.schema import (
    Category,
    CheckboxField,
    ConfigField,
    MultiSelectField,
    NumberField,
    SelectField,
    SliderField,
    StageConfigSchema,
    TextField,
    parse_field_input,
)

__all__ = [
    "TERMINAL_STATUSES",
    "CancelResult",
    "Category",
    "CheckboxField",
    "ConfigField",
    "ExecutionPlan",
    "ExecutionResult",
    "MultiSelectField",
    "NumberField",
    "Pipeline",
    "PipelineHistoryItem",
    "PipelineHistoryResponse",
    "PipelineStatus",
    "Progress",
    "RunStatus",
    "SelectField",
    "ServiceHealth",
    "SliderField",
    "Stage",
    "StageConfigSchema",
    "StagesResponse",
    "TextField",
    "ValidationResult",
    "is_terminal",
    "parse_field_input",
]
