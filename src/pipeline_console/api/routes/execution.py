"""Execution routes — validate, execute, cancel and observe a run.

The browser disables Execute while a request is in flight; this surface
enforces the same gate with 409 so the controller never sees overlapping
execute calls.
"""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from pipeline_console.api.deps import ConsoleDep
from pipeline_console.api.errors import ConsoleHttpError
from pipeline_console.execution.session import SessionSnapshot
from pipeline_console.services.console import PipelineConsole

router = APIRouter(prefix="/execution", tags=["Execution"])


class CancelResponse(BaseModel):
    accepted: bool
    session: SessionSnapshot


def _require_pipeline(console: PipelineConsole) -> None:
    if not console.selection.selected_pipeline:
        raise ConsoleHttpError(
            status_code=409,
            code="NO_PIPELINE_SELECTED",
            message="Select a pipeline first",
        )


@router.get("", response_model=SessionSnapshot)
async def get_session(console: ConsoleDep) -> SessionSnapshot:
    return console.controller.session


@router.post("/validate", response_model=SessionSnapshot)
async def validate(console: ConsoleDep) -> SessionSnapshot:
    """Validate the current selection; transport failures land in ``errors``."""
    _require_pipeline(console)
    await console.controller.validate()
    return console.controller.session


@router.post("/execute", response_model=SessionSnapshot)
async def execute(console: ConsoleDep) -> SessionSnapshot:
    """Start a run and begin polling its status in the background.

    Raises:
        ConsoleHttpError: 409 if no pipeline is selected or an execute call
            is already in flight.
    """
    _require_pipeline(console)
    if console.controller.session.execution_in_flight:
        raise ConsoleHttpError(
            status_code=409,
            code="EXECUTION_IN_FLIGHT",
            message="An execute request is already in flight",
        )
    await console.controller.execute()
    return console.controller.session


@router.post("/cancel", response_model=CancelResponse)
async def cancel(console: ConsoleDep) -> CancelResponse:
    """Request cancellation; the poll loop reports the outcome."""
    accepted = await console.controller.cancel()
    return CancelResponse(accepted=accepted, session=console.controller.session)


@router.delete("/errors", response_model=SessionSnapshot)
async def clear_errors(console: ConsoleDep) -> SessionSnapshot:
    console.controller.clear_errors()
    return console.controller.session


@router.post("/reset", response_model=SessionSnapshot)
async def reset(console: ConsoleDep) -> SessionSnapshot:
    """Stop polling and clear the whole session."""
    console.controller.reset()
    return console.controller.session
