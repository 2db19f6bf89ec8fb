"""PipelineConsole: wires catalog, selection, configuration and execution.

Data flows one way during setup (catalog -> selection -> configuration) and
converges in the ExecutionController at run time. This class also performs
the remote loading the state containers do not: the catalog listing, and the
schema/defaults fetch the first time a stage is selected. Both are cached for
the lifetime of the console.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

import httpx

from pipeline_console.client.api import PipelineApiClient
from pipeline_console.config import DEFAULT_POLL_INTERVAL_SECONDS, ConsoleSettings
from pipeline_console.errors import PipelineConsoleError, ProfileError
from pipeline_console.execution.controller import ExecutionController
from pipeline_console.models.schema import parse_field_input
from pipeline_console.profiles import RunProfile, parse_scalar
from pipeline_console.state.catalog import StageCatalog
from pipeline_console.state.configuration import ConfigurationState
from pipeline_console.state.selection import SelectionState

logger = logging.getLogger(__name__)


class PipelineConsole:
    """One console session against a pipeline service.

    Args:
        client: Pipeline service client; closed by aclose().
        poll_interval_seconds: Status poll period for the controller.
    """

    def __init__(
        self,
        client: PipelineApiClient,
        *,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        self.client = client
        self.catalog = StageCatalog()
        self.selection = SelectionState(self.catalog)
        self.configuration = ConfigurationState()
        self.metadata: dict[str, Any] = {}
        self.controller = ExecutionController(
            client,
            self.selection,
            self.configuration,
            poll_interval_seconds=poll_interval_seconds,
            metadata_provider=lambda: dict(self.metadata),
        )
        self.load_errors: dict[str, str] = {}

    @classmethod
    def from_settings(
        cls,
        settings: ConsoleSettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> PipelineConsole:
        return cls(
            PipelineApiClient.from_settings(settings, http_client=http_client),
            poll_interval_seconds=settings.poll_interval_seconds,
        )

    async def __aenter__(self) -> PipelineConsole:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop polling and close the HTTP client."""
        await self.controller.aclose()
        await self.client.aclose()

    async def load_catalog(self, *, force: bool = False) -> StageCatalog:
        """List pipelines and stages once; ``force`` re-lists.

        Raises:
            PipelineConsoleError: If the listing fails after bounded retry.
        """
        if self.catalog.loaded and not force:
            return self.catalog
        response = await self.client.list_stages()
        self.catalog.replace(response)
        return self.catalog

    def select_pipeline(self, pipeline_name: str) -> None:
        self.selection.select_pipeline(pipeline_name)

    async def toggle_stage(self, stage_name: str) -> set[str]:
        """Toggle a stage and load config metadata for newly selected stages.

        Returns:
            Stages added by the toggle (empty when the stage was removed).
        """
        added = self.selection.toggle(stage_name)
        await self.ensure_stage_configs(added)
        return added

    async def set_selected_stages(self, stage_names: Iterable[str]) -> None:
        """Bulk-replace the selection without dependency closure."""
        names = list(stage_names)
        self.selection.set_selected_stages(names)
        await self.ensure_stage_configs(names)

    async def ensure_stage_configs(self, stage_names: Iterable[str]) -> None:
        await asyncio.gather(*(self.ensure_stage_config(name) for name in stage_names))

    async def ensure_stage_config(self, stage_name: str) -> bool:
        """Fetch schema and defaults for a stage unless already cached.

        Schema and defaults are stored independently as they arrive. Failures
        are recorded in ``load_errors`` and logged; they never reach the
        execution error log.

        Returns:
            True when both schema and defaults are cached afterwards.
        """
        if self.configuration.is_cached(stage_name):
            return True

        schema_result, defaults_result = await asyncio.gather(
            self.client.get_stage_config(stage_name),
            self.client.get_stage_defaults(stage_name),
            return_exceptions=True,
        )

        failures: list[str] = []
        for result in (schema_result, defaults_result):
            if isinstance(result, PipelineConsoleError):
                failures.append(str(result))
            elif isinstance(result, BaseException):
                raise result

        if not isinstance(schema_result, BaseException):
            self.configuration.set_schema(stage_name, schema_result)
        if not isinstance(defaults_result, BaseException):
            self.configuration.set_defaults(stage_name, defaults_result)

        if failures:
            self.load_errors[stage_name] = "; ".join(failures)
            logger.warning(
                "Could not load config for stage %s: %s",
                stage_name,
                self.load_errors[stage_name],
                extra={"stage": stage_name},
            )
            return False

        self.load_errors.pop(stage_name, None)
        return True

    def set_field_from_text(self, stage_name: str, field_name: str, raw: str) -> Any:
        """Set a field from text input, converting it by the field's schema kind.

        Fields absent from the schema (or stages without a schema) are parsed
        as YAML scalars.

        Raises:
            FieldValueError: If the schema rejects the input.
        """
        schema = self.configuration.get_schema(stage_name)
        field = schema.get_field(field_name) if schema is not None else None
        value = parse_field_input(field, raw) if field is not None else parse_scalar(raw)
        self.configuration.set_field_value(stage_name, field_name, value)
        return value

    async def apply_profile(self, profile: RunProfile) -> None:
        """Load a run profile into the selection and configuration.

        Stages are toggled on one by one so their dependencies are included.

        Raises:
            ProfileError: If the profile names an unknown global config key.
        """
        if profile.pipeline:
            self.select_pipeline(profile.pipeline)
        for stage_name in profile.stages:
            if not self.selection.is_selected(stage_name):
                await self.toggle_stage(stage_name)
        if profile.global_config:
            try:
                self.configuration.set_global_config(**profile.global_config)
            except KeyError as e:
                raise ProfileError(e.args[0]) from e
        for stage_name, values in profile.config.items():
            for field_name, value in values.items():
                self.configuration.set_field_value(stage_name, field_name, value)
        self.metadata.update(profile.metadata)
