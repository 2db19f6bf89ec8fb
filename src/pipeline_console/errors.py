"""Exception hierarchy for pipeline_console.

Remote failures surface as ApiError (the service answered with a non-2xx
status) or ApiTransportError (no response at all). The execution controller
catches both and records them in the session error log; everything else
propagates to the caller.
"""

from __future__ import annotations


class PipelineConsoleError(Exception):
    """Base class for all pipeline_console errors."""


class ApiError(PipelineConsoleError):
    """Raised when the pipeline service returns a non-2xx response.

    Attributes:
        status_code: HTTP status returned by the service.
        message: Human-readable description.
    """

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ApiTransportError(PipelineConsoleError):
    """Raised when a request to the pipeline service produced no response."""


class ConsoleConfigError(PipelineConsoleError):
    """Raised when environment configuration is invalid."""


class ProfileError(PipelineConsoleError):
    """Raised when a run profile cannot be read or is malformed."""


class FieldValueError(PipelineConsoleError):
    """Raised when text input cannot be converted for a config field.

    Attributes:
        field_name: Name of the offending field.
    """

    def __init__(self, field_name: str, message: str) -> None:
        super().__init__(f"{field_name}: {message}")
        self.field_name = field_name
