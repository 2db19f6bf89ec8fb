"""Selection routes. Choose a pipeline and the stages to run."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from pipeline_console.api.deps import ConsoleDep
from pipeline_console.api.errors import ConsoleHttpError
from pipeline_console.services.console import PipelineConsole

router = APIRouter(prefix="/selection", tags=["Selection"])


class SelectionResponse(BaseModel):
    """Current selection.

    Attributes:
        pipeline: Selected pipeline, if any.
        stages: Selected stages in insertion order.
        added: Stages added by the request that produced this response.
        missing_dependencies: Selected stages whose dependencies are unselected.
        load_errors: Stages whose schema/defaults could not be loaded.
    """

    pipeline: str | None
    stages: list[str]
    added: list[str] = Field(default_factory=list)
    missing_dependencies: dict[str, list[str]] = Field(default_factory=dict)
    load_errors: dict[str, str] = Field(default_factory=dict)


class SelectPipelineRequest(BaseModel):
    pipeline: str


class SetStagesRequest(BaseModel):
    stages: list[str]


def _selection_response(
    console: PipelineConsole, added: set[str] | None = None
) -> SelectionResponse:
    stages = list(console.selection.selected_stages)
    return SelectionResponse(
        pipeline=console.selection.selected_pipeline,
        stages=stages,
        added=sorted(added or ()),
        missing_dependencies=console.selection.missing_dependencies(),
        load_errors={s: e for s, e in console.load_errors.items() if s in stages},
    )


@router.get("", response_model=SelectionResponse)
async def get_selection(console: ConsoleDep) -> SelectionResponse:
    return _selection_response(console)


@router.put("/pipeline", response_model=SelectionResponse)
async def select_pipeline(body: SelectPipelineRequest, console: ConsoleDep) -> SelectionResponse:
    """Select a pipeline; clears the stage selection.

    Raises:
        ConsoleHttpError: 404 if the pipeline is not in the catalog.
    """
    catalog = await console.load_catalog()
    if not catalog.has_pipeline(body.pipeline):
        raise ConsoleHttpError(
            status_code=404,
            code="PIPELINE_NOT_FOUND",
            message=f"Unknown pipeline: {body.pipeline}",
            details={"available": sorted(catalog.pipelines)},
        )
    console.select_pipeline(body.pipeline)
    return _selection_response(console)


@router.post("/stages/{stage_name}/toggle", response_model=SelectionResponse)
async def toggle_stage(stage_name: str, console: ConsoleDep) -> SelectionResponse:
    """Toggle a stage; turning one on also selects its dependencies."""
    added = await console.toggle_stage(stage_name)
    return _selection_response(console, added)


@router.put("/stages", response_model=SelectionResponse)
async def set_stages(body: SetStagesRequest, console: ConsoleDep) -> SelectionResponse:
    """Replace the stage set as given, without dependency closure."""
    await console.set_selected_stages(body.stages)
    return _selection_response(console)


@router.delete("", response_model=SelectionResponse)
async def clear_selection(console: ConsoleDep) -> SelectionResponse:
    console.selection.clear()
    return _selection_response(console)
