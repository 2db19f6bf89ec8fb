"""ConfigurationState — per-stage schema, defaults and user overrides.

Rules:
- set_defaults seeds a stage's override map from its defaults only if the
  stage has no override map yet; refreshing defaults never discards edits.
- reset_stage_config copies the *current* defaults, not an earlier snapshot.
- apply_global_to_all is a one-shot copy where global keys win; afterwards
  per-stage edits are independent again.
- effective_config / build_payload layer the other way round: defined global
  keys form the base and the stage's overrides win.

Values are opaque here; type and range checks belong to schema consumers.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, fields, replace
from typing import Any

from pipeline_console.models.schema import StageConfigSchema

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 15


@dataclass(frozen=True)
class GlobalConfig:
    """Pipeline-independent settings shared by every stage.

    Attributes:
        db_name: Shared database name; None leaves each stage's own value.
        concurrency: Worker concurrency.
        verbose: Verbose stage logging.
        dry_run: Run stages without writing results.
    """

    db_name: str | None = None
    concurrency: int | None = DEFAULT_CONCURRENCY
    verbose: bool | None = False
    dry_run: bool | None = False

    def defined(self) -> dict[str, Any]:
        """Keys whose value is set; unset keys are never propagated."""
        return {k: v for k, v in asdict(self).items() if v is not None}


GLOBAL_CONFIG_KEYS: frozenset[str] = frozenset(f.name for f in fields(GlobalConfig))


class ConfigurationState:
    """Schemas, defaults and override maps for every stage seen this session."""

    def __init__(self) -> None:
        self._schemas: dict[str, StageConfigSchema] = {}
        self._defaults: dict[str, dict[str, Any]] = {}
        self._configs: dict[str, dict[str, Any]] = {}
        self._global = GlobalConfig()

    @property
    def schemas(self) -> dict[str, StageConfigSchema]:
        return dict(self._schemas)

    @property
    def defaults(self) -> dict[str, dict[str, Any]]:
        return {stage: dict(values) for stage, values in self._defaults.items()}

    @property
    def configs(self) -> dict[str, dict[str, Any]]:
        return {stage: dict(values) for stage, values in self._configs.items()}

    @property
    def global_config(self) -> GlobalConfig:
        return self._global

    def get_schema(self, stage_name: str) -> StageConfigSchema | None:
        return self._schemas.get(stage_name)

    def get_defaults(self, stage_name: str) -> dict[str, Any] | None:
        values = self._defaults.get(stage_name)
        return dict(values) if values is not None else None

    def get_config(self, stage_name: str) -> dict[str, Any] | None:
        values = self._configs.get(stage_name)
        return dict(values) if values is not None else None

    def is_cached(self, stage_name: str) -> bool:
        """True once both schema and defaults have been stored for a stage."""
        return stage_name in self._schemas and stage_name in self._defaults

    def set_schema(self, stage_name: str, schema: StageConfigSchema) -> None:
        self._schemas[stage_name] = schema

    def set_defaults(self, stage_name: str, defaults: Mapping[str, Any]) -> None:
        """Store defaults and seed the override map if it does not exist yet."""
        self._defaults[stage_name] = dict(defaults)
        if stage_name not in self._configs:
            self._configs[stage_name] = dict(defaults)

    def set_field_value(self, stage_name: str, field_name: str, value: Any) -> None:
        """Set one override, creating the stage's map if defaults have not arrived."""
        self._configs.setdefault(stage_name, {})[field_name] = value

    def reset_stage_config(self, stage_name: str) -> None:
        """Replace one stage's overrides with a copy of its current defaults."""
        self._configs[stage_name] = dict(self._defaults.get(stage_name, {}))

    def set_global_config(self, **updates: Any) -> GlobalConfig:
        """Shallow-merge updates into the global config.

        Raises:
            KeyError: If an update names an unknown global key.
        """
        unknown = set(updates) - GLOBAL_CONFIG_KEYS
        if unknown:
            raise KeyError(f"Unknown global config keys: {sorted(unknown)}")
        self._global = replace(self._global, **updates)
        return self._global

    def apply_global_to_all(
        self,
        selected_stages: Iterable[str],
        global_config: GlobalConfig | None = None,
    ) -> None:
        """Copy defined global keys into each selected stage's override map.

        Args:
            selected_stages: Stages to update; other stages are left untouched.
            global_config: Values to propagate; defaults to the stored global config.
        """
        values = (global_config or self._global).defined()
        stages = list(selected_stages)
        for stage_name in stages:
            self._configs[stage_name] = {**self._configs.get(stage_name, {}), **values}
        logger.info("Applied global config %s to %d stages", sorted(values), len(stages))

    def effective_config(self, stage_name: str) -> dict[str, Any]:
        """Defined global keys overlaid by the stage's own overrides."""
        return {**self._global.defined(), **self._configs.get(stage_name, {})}

    def build_payload(self, selected_stages: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Per-stage config sent to validate/execute.

        Only selected stages that have an override map are included.
        """
        return {
            stage_name: self.effective_config(stage_name)
            for stage_name in selected_stages
            if stage_name in self._configs
        }

    def clear_configs(self) -> None:
        """Drop every override map and restore global defaults.

        Schemas and defaults stay cached.
        """
        self._configs = {}
        self._global = GlobalConfig()
