"""Client-side state containers: catalog, selection and configuration."""

from pipeline_console.state.catalog import StageCatalog
from pipeline_console.state.configuration import (
    GLOBAL_CONFIG_KEYS,
    ConfigurationState,
    GlobalConfig,
)
from pipeline_console.state.selection import SelectionState

__all__ = [
    "GLOBAL_CONFIG_KEYS",
    "ConfigurationState",
    "GlobalConfig",
    "SelectionState",
    "StageCatalog",
]
