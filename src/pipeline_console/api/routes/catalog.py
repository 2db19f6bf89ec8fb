"""Catalog and history routes: read-only views of the pipeline service."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query

from pipeline_console.api.deps import ConsoleDep
from pipeline_console.models.catalog import StagesResponse
from pipeline_console.models.execution import PipelineHistoryResponse

router = APIRouter(tags=["Catalog"])


@router.get("/catalog", response_model=StagesResponse)
async def get_catalog(
    console: ConsoleDep,
    refresh: Annotated[bool, Query()] = False,
) -> StagesResponse:
    """List pipelines and stages, loading the catalog on first use.

    Args:
        console: Injected console session.
        refresh: Re-list from the pipeline service instead of using the cache.

    Returns:
        StagesResponse keyed by pipeline and stage name.
    """
    catalog = await console.load_catalog(force=refresh)
    return catalog.to_response()


@router.get("/history", response_model=PipelineHistoryResponse)
async def get_history(
    console: ConsoleDep,
    limit: Annotated[int, Query(ge=1, le=200)] = 10,
) -> PipelineHistoryResponse:
    """Past runs as reported by the pipeline service."""
    return await console.client.get_history(limit=limit)
