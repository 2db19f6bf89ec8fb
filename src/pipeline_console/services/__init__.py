"""Console services: the session facade used by the CLI and HTTP surface."""

from pipeline_console.services.console import PipelineConsole

__all__ = ["PipelineConsole"]
