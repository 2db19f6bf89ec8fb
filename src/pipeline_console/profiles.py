"""Run profiles — YAML files pre-populating a selection and its configuration.

Example:

    pipeline: graphrag
    stages: [extraction, resolution]
    global:
      db_name: corpus_2024
      concurrency: 8
    config:
      extraction:
        model: gpt-4o-mini
        temperature: 0.2
    metadata:
      channel: lectures
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pipeline_console.errors import ProfileError


class RunProfile(BaseModel):
    """Parsed run profile.

    Attributes:
        pipeline: Pipeline to select.
        stages: Stages to toggle on (dependencies are added automatically).
        global_config: Global config updates; YAML key ``global``.
        config: Field values per stage.
        metadata: Extra execute metadata.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    pipeline: str | None = None
    stages: list[str] = Field(default_factory=list)
    global_config: dict[str, Any] = Field(default_factory=dict, alias="global")
    config: dict[str, dict[str, Any]] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)


def parse_scalar(raw: str) -> Any:
    """Interpret command-line text the way YAML would (``8`` -> 8, ``true`` -> True)."""
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def load_profile(path: str | Path) -> RunProfile:
    """Read and validate a YAML run profile.

    Raises:
        ProfileError: If the file is missing, not YAML, or has the wrong shape.
    """
    profile_path = Path(path)
    try:
        content = profile_path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ProfileError(f"Profile not found: {profile_path}") from e
    except OSError as e:
        raise ProfileError(f"Cannot read profile {profile_path}: {e}") from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ProfileError(f"Invalid YAML in {profile_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ProfileError(f"Profile {profile_path} must be a mapping")

    try:
        return RunProfile.model_validate(data)
    except ValidationError as e:
        raise ProfileError(f"Invalid profile {profile_path}: {e}") from e
