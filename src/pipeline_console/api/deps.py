"""Shared FastAPI dependencies for console routes."""

from typing import Annotated

from fastapi import Depends, Request

from pipeline_console.services.console import PipelineConsole


def get_console(request: Request) -> PipelineConsole:
    """Return the PipelineConsole bound to the application."""
    console: PipelineConsole = request.app.state.console
    return console


ConsoleDep = Annotated[PipelineConsole, Depends(get_console)]
