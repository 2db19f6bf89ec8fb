"""Console FastAPI application factory.

This module provides the create_app() factory for serving one console
session over HTTP to a browser front end.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from pipeline_console.api.errors import (
    ConsoleHttpError,
    console_http_error_handler,
    generic_exception_handler,
    http_exception_handler,
    request_validation_error_handler,
    upstream_error_handler,
)
from pipeline_console.api.middleware import RequestIdMiddleware
from pipeline_console.api.routes.catalog import router as catalog_router
from pipeline_console.api.routes.config import router as config_router
from pipeline_console.api.routes.execution import router as execution_router
from pipeline_console.api.routes.health import CONSOLE_VERSION
from pipeline_console.api.routes.health import router as health_router
from pipeline_console.api.routes.selection import router as selection_router
from pipeline_console.config import ConsoleSettings, load_settings
from pipeline_console.errors import PipelineConsoleError
from pipeline_console.services.console import PipelineConsole


def create_app(
    console: PipelineConsole | None = None,
    settings: ConsoleSettings | None = None,
) -> FastAPI:
    """Create and configure the console FastAPI application.

    This factory:
    - Builds a PipelineConsole from settings unless one is injected
    - Registers RequestIdMiddleware and the error envelope handlers
    - Mounts the health, catalog, selection, config and execution routers
    - Closes the console (stops polling, closes HTTP client) on shutdown

    Args:
        console: Optional console session for testing. If None, one is built
            from ``settings``.
        settings: Optional settings. If None, read from the environment.

    Returns:
        Configured FastAPI application instance.
    """
    if console is None:
        console = PipelineConsole.from_settings(settings or load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.console.aclose()

    app = FastAPI(
        title="Pipeline Console API",
        description="Select, configure, validate and run pipeline stages",
        version=CONSOLE_VERSION,
        lifespan=lifespan,
    )

    app.state.console = console

    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(ConsoleHttpError, console_http_error_handler)
    app.add_exception_handler(PipelineConsoleError, upstream_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(catalog_router)
    app.include_router(selection_router)
    app.include_router(config_router)
    app.include_router(execution_router)

    return app
