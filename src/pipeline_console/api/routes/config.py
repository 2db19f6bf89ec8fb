"""Configuration routes for global settings and per-stage overrides.

The ``/config/global`` routes are registered before ``/config/{stage_name}``
so "global" is never captured as a stage name.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from pipeline_console.api.deps import ConsoleDep
from pipeline_console.models.schema import StageConfigSchema
from pipeline_console.services.console import PipelineConsole

router = APIRouter(prefix="/config", tags=["Configuration"])


class GlobalConfigBody(BaseModel):
    """Global config as exchanged with the UI; omitted keys are left unchanged."""

    db_name: str | None = None
    concurrency: int | None = None
    verbose: bool | None = None
    dry_run: bool | None = None


class ApplyGlobalResponse(BaseModel):
    applied_to: list[str]
    global_config: GlobalConfigBody


class FieldValueRequest(BaseModel):
    value: Any = None


class StageConfigView(BaseModel):
    """Everything the UI needs to render one stage's config panel."""

    stage: str
    config_schema: StageConfigSchema | None = None
    defaults: dict[str, Any] | None = None
    overrides: dict[str, Any] | None = None
    effective: dict[str, Any]
    load_error: str | None = None


def _global_body(console: PipelineConsole) -> GlobalConfigBody:
    return GlobalConfigBody(**asdict(console.configuration.global_config))


def _stage_view(console: PipelineConsole, stage_name: str) -> StageConfigView:
    configuration = console.configuration
    return StageConfigView(
        stage=stage_name,
        config_schema=configuration.get_schema(stage_name),
        defaults=configuration.get_defaults(stage_name),
        overrides=configuration.get_config(stage_name),
        effective=configuration.effective_config(stage_name),
        load_error=console.load_errors.get(stage_name),
    )


@router.get("/global", response_model=GlobalConfigBody)
async def get_global_config(console: ConsoleDep) -> GlobalConfigBody:
    return _global_body(console)


@router.patch("/global", response_model=GlobalConfigBody)
async def update_global_config(body: GlobalConfigBody, console: ConsoleDep) -> GlobalConfigBody:
    """Shallow-merge the supplied keys into the global config."""
    console.configuration.set_global_config(**body.model_dump(exclude_unset=True))
    return _global_body(console)


@router.post("/global/apply", response_model=ApplyGlobalResponse)
async def apply_global_config(console: ConsoleDep) -> ApplyGlobalResponse:
    """Copy global values into every currently selected stage (one-shot)."""
    stages = list(console.selection.selected_stages)
    console.configuration.apply_global_to_all(stages)
    return ApplyGlobalResponse(applied_to=stages, global_config=_global_body(console))


@router.delete("", response_model=GlobalConfigBody)
async def clear_configs(console: ConsoleDep) -> GlobalConfigBody:
    """Drop all stage overrides and restore global defaults."""
    console.configuration.clear_configs()
    return _global_body(console)


@router.get("/{stage_name}", response_model=StageConfigView)
async def get_stage_config(stage_name: str, console: ConsoleDep) -> StageConfigView:
    """Schema, defaults, overrides and effective values for one stage.

    Loads schema and defaults on first access.
    """
    await console.ensure_stage_config(stage_name)
    return _stage_view(console, stage_name)


@router.put(
    "/{stage_name}/fields/{field_name}",
    response_model=StageConfigView,
)
async def set_field_value(
    stage_name: str,
    field_name: str,
    body: FieldValueRequest,
    console: ConsoleDep,
) -> StageConfigView:
    console.configuration.set_field_value(stage_name, field_name, body.value)
    return _stage_view(console, stage_name)


@router.post("/{stage_name}/reset", response_model=StageConfigView)
async def reset_stage_config(stage_name: str, console: ConsoleDep) -> StageConfigView:
    """Discard a stage's edits, restoring a copy of its current defaults."""
    console.configuration.reset_stage_config(stage_name)
    return _stage_view(console, stage_name)
