"""Catalog models — pipelines and stages advertised by the pipeline service.

Shapes match GET /stages: ``{"pipelines": {...}, "stages": {...}}``, both keyed
by name. Stages are immutable once loaded.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Stage(BaseModel):
    """One unit of backend pipeline processing.

    Attributes:
        name: Stage identifier (unique within the catalog).
        display_name: Human-readable label.
        description: Free-text description.
        pipeline: Name of the pipeline this stage belongs to.
        config_class: Backend configuration class name for the stage.
        dependencies: Names of stages that must run with this one.
        has_llm: Whether the stage calls a language model.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str = ""
    description: str = ""
    pipeline: str = ""
    config_class: str = ""
    dependencies: tuple[str, ...] = ()
    has_llm: bool = False


class Pipeline(BaseModel):
    """A named grouping of stages that can be selected as a unit."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    stages: tuple[str, ...] = ()
    stage_count: int = 0


class StagesResponse(BaseModel):
    """Response body of GET /stages and GET /stages/{pipeline}."""

    pipelines: dict[str, Pipeline] = Field(default_factory=dict)
    stages: dict[str, Stage] = Field(default_factory=dict)
