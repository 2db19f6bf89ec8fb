"""Pipeline service HTTP client.

Provides the async client for the remote pipeline service and the bounded
retry helper used by its read calls.
"""

from pipeline_console.client.api import PipelineApiClient
from pipeline_console.client.retry import is_retryable_error, with_retry

__all__ = ["PipelineApiClient", "is_retryable_error", "with_retry"]
