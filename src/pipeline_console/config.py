"""Console settings loaded from environment variables.

Environment variables:
    PIPELINE_CONSOLE_API_URL: Pipeline service base URL
        (default: http://localhost:8080/api/v1)
    PIPELINE_CONSOLE_TIMEOUT_SECONDS: Per-request timeout (default: 30)
    PIPELINE_CONSOLE_POLL_INTERVAL_SECONDS: Status poll period (default: 2)
    PIPELINE_CONSOLE_MAX_RETRIES: Bounded retries for read calls (default: 3)
    PIPELINE_CONSOLE_RETRY_BASE_DELAY: Backoff base in seconds (default: 1)
    PIPELINE_CONSOLE_RETRY_MAX_DELAY: Backoff cap in seconds (default: 10)
    PIPELINE_CONSOLE_LOG_LEVEL: Logging level name (default: INFO)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Final

from pipeline_console.errors import ConsoleConfigError

ENV_API_URL: Final[str] = "PIPELINE_CONSOLE_API_URL"
ENV_TIMEOUT_SECONDS: Final[str] = "PIPELINE_CONSOLE_TIMEOUT_SECONDS"
ENV_POLL_INTERVAL_SECONDS: Final[str] = "PIPELINE_CONSOLE_POLL_INTERVAL_SECONDS"
ENV_MAX_RETRIES: Final[str] = "PIPELINE_CONSOLE_MAX_RETRIES"
ENV_RETRY_BASE_DELAY: Final[str] = "PIPELINE_CONSOLE_RETRY_BASE_DELAY"
ENV_RETRY_MAX_DELAY: Final[str] = "PIPELINE_CONSOLE_RETRY_MAX_DELAY"
ENV_LOG_LEVEL: Final[str] = "PIPELINE_CONSOLE_LOG_LEVEL"

DEFAULT_API_URL: Final[str] = "http://localhost:8080/api/v1"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 30.0
DEFAULT_POLL_INTERVAL_SECONDS: Final[float] = 2.0
DEFAULT_MAX_RETRIES: Final[int] = 3
DEFAULT_RETRY_BASE_DELAY: Final[float] = 1.0
DEFAULT_RETRY_MAX_DELAY: Final[float] = 10.0
DEFAULT_LOG_LEVEL: Final[str] = "INFO"


@dataclass(frozen=True)
class ConsoleSettings:
    """Console configuration (immutable).

    Attributes:
        api_url: Pipeline service base URL, without trailing slash.
        timeout_seconds: Per-request timeout.
        poll_interval_seconds: Period of the status poll loop.
        max_retries: Retries after the first attempt for read calls.
        retry_base_delay: Exponential backoff base in seconds.
        retry_max_delay: Upper bound for a single backoff delay.
        log_level: Logging level name.
    """

    api_url: str = DEFAULT_API_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY
    retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.api_url.startswith(("http://", "https://")):
            raise ConsoleConfigError(
                f"{ENV_API_URL} must be an http(s) URL, got '{self.api_url}'"
            )
        if self.timeout_seconds <= 0:
            raise ConsoleConfigError(
                f"{ENV_TIMEOUT_SECONDS} must be positive, got {self.timeout_seconds}"
            )
        if self.poll_interval_seconds <= 0:
            raise ConsoleConfigError(
                f"{ENV_POLL_INTERVAL_SECONDS} must be positive, "
                f"got {self.poll_interval_seconds}"
            )
        if self.max_retries < 0:
            raise ConsoleConfigError(
                f"{ENV_MAX_RETRIES} must be a non-negative integer, got {self.max_retries}"
            )
        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            raise ConsoleConfigError("Retry delays must be non-negative")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConsoleConfigError(f"{ENV_LOG_LEVEL} is not a logging level: '{self.log_level}'")


def _read_env(env_var: str) -> str | None:
    raw = os.environ.get(env_var)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _parse_float(env_var: str, default: float) -> float:
    """Parse a float from an environment variable.

    Args:
        env_var: Environment variable name.
        default: Value used when the variable is unset or blank.

    Returns:
        Parsed float.

    Raises:
        ConsoleConfigError: If the value is set but not a number.
    """
    raw = _read_env(env_var)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConsoleConfigError(f"{env_var} must be a number, got '{raw}'") from e


def _parse_int(env_var: str, default: int) -> int:
    raw = _read_env(env_var)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConsoleConfigError(f"{env_var} must be an integer, got '{raw}'") from e


def load_settings() -> ConsoleSettings:
    """Load console settings from environment variables.

    Returns:
        ConsoleSettings with validated values.

    Raises:
        ConsoleConfigError: If any value is invalid.
    """
    return ConsoleSettings(
        api_url=(_read_env(ENV_API_URL) or DEFAULT_API_URL).rstrip("/"),
        timeout_seconds=_parse_float(ENV_TIMEOUT_SECONDS, DEFAULT_TIMEOUT_SECONDS),
        poll_interval_seconds=_parse_float(
            ENV_POLL_INTERVAL_SECONDS, DEFAULT_POLL_INTERVAL_SECONDS
        ),
        max_retries=_parse_int(ENV_MAX_RETRIES, DEFAULT_MAX_RETRIES),
        retry_base_delay=_parse_float(ENV_RETRY_BASE_DELAY, DEFAULT_RETRY_BASE_DELAY),
        retry_max_delay=_parse_float(ENV_RETRY_MAX_DELAY, DEFAULT_RETRY_MAX_DELAY),
        log_level=_read_env(ENV_LOG_LEVEL) or DEFAULT_LOG_LEVEL,
    )
