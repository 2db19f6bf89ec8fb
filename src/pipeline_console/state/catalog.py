"""StageCatalog holds the pipelines and stages available for the current load.

Populated once from GET /stages and read-only afterwards; a reload replaces
the whole catalog.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from pipeline_console.models.catalog import Pipeline, Stage, StagesResponse

logger = logging.getLogger(__name__)


class StageCatalog:
    """Immutable-per-load record of available pipelines and stages."""

    def __init__(
        self,
        pipelines: Mapping[str, Pipeline] | None = None,
        stages: Mapping[str, Stage] | None = None,
    ) -> None:
        self._pipelines: dict[str, Pipeline] = dict(pipelines or {})
        self._stages: dict[str, Stage] = dict(stages or {})
        self._loaded = pipelines is not None or stages is not None

    @classmethod
    def from_response(cls, response: StagesResponse) -> StageCatalog:
        return cls(response.pipelines, response.stages)

    def replace(self, response: StagesResponse) -> None:
        """Swap in a freshly listed catalog."""
        self._pipelines = dict(response.pipelines)
        self._stages = dict(response.stages)
        self._loaded = True
        logger.info(
            "Loaded stage catalog: %d pipelines, %d stages",
            len(self._pipelines),
            len(self._stages),
        )

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def pipelines(self) -> dict[str, Pipeline]:
        return dict(self._pipelines)

    @property
    def stages(self) -> dict[str, Stage]:
        return dict(self._stages)

    def get_pipeline(self, name: str) -> Pipeline | None:
        return self._pipelines.get(name)

    def get_stage(self, name: str) -> Stage | None:
        return self._stages.get(name)

    def has_pipeline(self, name: str) -> bool:
        return name in self._pipelines

    def dependencies_of(self, stage_name: str) -> tuple[str, ...]:
        """Direct dependencies of a stage; empty for unknown stages."""
        stage = self._stages.get(stage_name)
        return stage.dependencies if stage is not None else ()

    def stages_for_pipeline(self, pipeline_name: str) -> list[Stage]:
        """Stages of a pipeline in the pipeline's declared order.

        Falls back to every stage whose ``pipeline`` attribute matches when the
        pipeline entry lists no stage names.
        """
        pipeline = self._pipelines.get(pipeline_name)
        if pipeline is not None and pipeline.stages:
            return [self._stages[n] for n in pipeline.stages if n in self._stages]
        return [s for s in self._stages.values() if s.pipeline == pipeline_name]

    def to_response(self) -> StagesResponse:
        return StagesResponse(pipelines=dict(self._pipelines), stages=dict(self._stages))
