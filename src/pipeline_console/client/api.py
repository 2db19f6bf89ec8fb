"""Async HTTP client for the pipeline service.

Implements the remote contract consumed by the console:

    GET  /stages                     list pipelines and stages
    GET  /stages/{pipeline}          stages of one pipeline
    GET  /stages/{name}/config       stage configuration schema
    GET  /stages/{name}/defaults     stage default values
    POST /pipelines/validate         validate a selection + config
    POST /pipelines/execute          start a run
    GET  /pipelines/{id}/status      poll a run
    POST /pipelines/{id}/cancel      request cancellation
    GET  /pipelines/history          past runs
    GET  /health                     service health

Read calls go through bounded retry; validate/execute/status/cancel do not.
"""

from __future__ import annotations

import asyncio
import logging
import urllib.parse
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from pipeline_console.client.retry import with_retry
from pipeline_console.config import (
    DEFAULT_API_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_RETRY_MAX_DELAY,
    DEFAULT_TIMEOUT_SECONDS,
    ConsoleSettings,
)
from pipeline_console.errors import ApiError, ApiTransportError
from pipeline_console.models.catalog import StagesResponse
from pipeline_console.models.execution import (
    CancelResult,
    ExecutionResult,
    PipelineHistoryResponse,
    PipelineStatus,
    ServiceHealth,
    ValidationResult,
)
from pipeline_console.models.schema import StageConfigSchema

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

DEFAULT_HISTORY_LIMIT = 10


def _segment(value: str) -> str:
    return urllib.parse.quote(value, safe="")


class PipelineApiClient:
    """Client for the pipeline service JSON API.

    Args:
        base_url: Service base URL, e.g. ``http://localhost:8080/api/v1``.
        http_client: Optional httpx.AsyncClient for dependency injection (testing).
        timeout_seconds: Timeout for the client created when none is injected.
        max_retries: Retries after the first attempt for read calls.
        retry_base_delay: Backoff base in seconds.
        retry_max_delay: Backoff cap in seconds.
        sleep: Awaitable sleep used between retries.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout_seconds,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: ConsoleSettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> PipelineApiClient:
        """Build a client from loaded settings."""
        return cls(
            settings.api_url,
            http_client=http_client,
            timeout_seconds=settings.timeout_seconds,
            max_retries=settings.max_retries,
            retry_base_delay=settings.retry_base_delay,
            retry_max_delay=settings.retry_max_delay,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> PipelineApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """Execute one request and decode the JSON body.

        Raises:
            ApiError: On non-2xx status or undecodable body.
            ApiTransportError: When no response was received.
        """
        url = f"{self._base_url}{path}"
        try:
            response = await self._http.request(method, url, json=json_body, params=params)
        except httpx.RequestError as exc:
            raise ApiTransportError(f"{method} {path} failed: {exc}") from exc

        if not response.is_success:
            raise ApiError(response.status_code, f"API Error: {response.reason_phrase}")

        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(response.status_code, f"Invalid JSON from {path}") from exc

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Mapping[str, Any] | None = None,
        retry: bool = True,
    ) -> Any:
        if not retry:
            return await self._send(method, path, json_body=json_body, params=params)

        return await with_retry(
            lambda: self._send(method, path, json_body=json_body, params=params),
            max_retries=self._max_retries,
            base_delay=self._retry_base_delay,
            max_delay=self._retry_max_delay,
            sleep=self._sleep,
        )

    @staticmethod
    def _parse(model: type[M], data: Any, path: str) -> M:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise ApiError(
                200, f"Malformed response from {path}: {exc.error_count()} validation errors"
            ) from exc

    async def list_stages(self) -> StagesResponse:
        """GET /stages."""
        data = await self._request("GET", "/stages")
        return self._parse(StagesResponse, data, "/stages")

    async def list_pipeline_stages(self, pipeline: str) -> StagesResponse:
        """GET /stages/{pipeline}."""
        path = f"/stages/{_segment(pipeline)}"
        return self._parse(StagesResponse, await self._request("GET", path), path)

    async def get_stage_config(self, stage_name: str) -> StageConfigSchema:
        """GET /stages/{name}/config."""
        path = f"/stages/{_segment(stage_name)}/config"
        return self._parse(StageConfigSchema, await self._request("GET", path), path)

    async def get_stage_defaults(self, stage_name: str) -> dict[str, Any]:
        """GET /stages/{name}/defaults."""
        path = f"/stages/{_segment(stage_name)}/defaults"
        data = await self._request("GET", path)
        if not isinstance(data, dict):
            raise ApiError(200, f"Malformed response from {path}: expected an object")
        return data

    async def validate(
        self,
        pipeline: str,
        stages: Sequence[str],
        config: Mapping[str, Mapping[str, Any]],
    ) -> ValidationResult:
        """POST /pipelines/validate.

        Args:
            pipeline: Selected pipeline name.
            stages: Selected stage names.
            config: Per-stage configuration payload.

        Returns:
            Structured validation result.
        """
        path = "/pipelines/validate"
        body = {"pipeline": pipeline, "stages": list(stages), "config": dict(config)}
        data = await self._request("POST", path, json_body=body, retry=False)
        return self._parse(ValidationResult, data, path)

    async def execute(
        self,
        pipeline: str,
        stages: Sequence[str],
        config: Mapping[str, Mapping[str, Any]],
        metadata: Mapping[str, Any] | None = None,
    ) -> ExecutionResult:
        """POST /pipelines/execute.

        Args:
            pipeline: Selected pipeline name.
            stages: Selected stage names.
            config: Per-stage configuration payload.
            metadata: Run metadata (experiment id, source filters).

        Returns:
            ExecutionResult carrying the run id, or an error message.
        """
        path = "/pipelines/execute"
        body = {
            "pipeline": pipeline,
            "stages": list(stages),
            "config": dict(config),
            "metadata": dict(metadata) if metadata is not None else None,
        }
        data = await self._request("POST", path, json_body=body, retry=False)
        return self._parse(ExecutionResult, data, path)

    async def get_status(self, pipeline_id: str) -> PipelineStatus:
        """GET /pipelines/{id}/status."""
        path = f"/pipelines/{_segment(pipeline_id)}/status"
        data = await self._request("GET", path, retry=False)
        if isinstance(data, dict):
            data.setdefault("pipeline_id", pipeline_id)
        return self._parse(PipelineStatus, data, path)

    async def cancel(self, pipeline_id: str) -> CancelResult:
        """POST /pipelines/{id}/cancel."""
        path = f"/pipelines/{_segment(pipeline_id)}/cancel"
        data = await self._request("POST", path, json_body={}, retry=False)
        return self._parse(CancelResult, data, path)

    async def get_history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> PipelineHistoryResponse:
        """GET /pipelines/history?limit=N."""
        path = "/pipelines/history"
        data = await self._request("GET", path, params={"limit": limit})
        return self._parse(PipelineHistoryResponse, data, path)

    async def get_health(self) -> ServiceHealth:
        """GET /health."""
        return self._parse(ServiceHealth, await self._request("GET", "/health"), "/health")
