"""Pytest configuration and fixtures for pipeline console tests.

Provides an in-memory pipeline service served through httpx.MockTransport so
no test touches the network. The catalog is:

    pipeline P: A, B, C    (C depends on B, B depends on A)
    pipeline Q: D
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Awaitable, Callable, Iterator
from typing import Any

import httpx
import pytest

from pipeline_console.client.api import PipelineApiClient
from pipeline_console.logging_setup import LOGGER_NAME
from pipeline_console.services.console import PipelineConsole

BASE_URL = "http://pipeline.test/api/v1"
TEST_POLL_INTERVAL = 0.01

CATALOG: dict[str, Any] = {
    "pipelines": {
        "P": {"name": "P", "description": "Primary", "stages": ["A", "B", "C"], "stage_count": 3},
        "Q": {"name": "Q", "description": "Secondary", "stages": ["D"], "stage_count": 1},
    },
    "stages": {
        "A": {
            "name": "A",
            "display_name": "Stage A",
            "pipeline": "P",
            "config_class": "AConfig",
            "dependencies": [],
            "has_llm": True,
        },
        "B": {
            "name": "B",
            "display_name": "Stage B",
            "pipeline": "P",
            "config_class": "BConfig",
            "dependencies": ["A"],
        },
        "C": {
            "name": "C",
            "display_name": "Stage C",
            "pipeline": "P",
            "config_class": "CConfig",
            "dependencies": ["B"],
        },
        "D": {"name": "D", "display_name": "Stage D", "pipeline": "Q", "dependencies": []},
    },
}

SCHEMAS: dict[str, Any] = {
    "A": {
        "stage_name": "A",
        "config_class": "AConfig",
        "fields": [
            {
                "name": "model",
                "type": "string",
                "ui_type": "select",
                "options": ["gpt-4o", "gpt-4o-mini"],
                "default": "gpt-4o-mini",
                "category": "llm",
            },
            {
                "name": "temperature",
                "type": "number",
                "ui_type": "slider",
                "min": 0,
                "max": 2,
                "step": 0.1,
                "default": 0.2,
                "category": "llm",
            },
            {"name": "db_name", "type": "string", "ui_type": "text", "default": "default_db"},
        ],
        "categories": [{"name": "llm", "fields": ["model", "temperature"], "field_count": 2}],
        "field_count": 3,
    },
    "B": {
        "stage_name": "B",
        "fields": [
            {"name": "batch_size", "type": "integer", "ui_type": "number", "min": 1, "max": 100},
            {"name": "verbose", "type": "boolean", "ui_type": "checkbox"},
        ],
        "field_count": 2,
    },
    "C": {
        "stage_name": "C",
        "fields": [
            {
                "name": "tags",
                "type": "array",
                "ui_type": "multiselect",
                "options": ["x", "y", "z"],
            },
        ],
        "field_count": 1,
    },
    "D": {"stage_name": "D", "fields": [], "field_count": 0},
}

DEFAULTS: dict[str, dict[str, Any]] = {
    "A": {"model": "gpt-4o-mini", "temperature": 0.2, "db_name": "default_db"},
    "B": {"batch_size": 10, "verbose": False},
    "C": {"tags": []},
    "D": {},
}


class FakePipelineService:
    """In-memory pipeline service.

    Attributes:
        requests: Every request received, in order.
        statuses: Status bodies returned by successive polls; the last one
            repeats once the list is exhausted.
        failures: Path -> HTTP status to answer with instead of the normal body.
        transport_failures: Path -> number of upcoming requests that raise
            httpx.ConnectError.
    """

    def __init__(self) -> None:
        self.catalog = copy.deepcopy(CATALOG)
        self.schemas = copy.deepcopy(SCHEMAS)
        self.defaults = copy.deepcopy(DEFAULTS)
        self.validation: dict[str, Any] = {"valid": True, "errors": {}, "warnings": []}
        self.execute_response: dict[str, Any] = {"pipeline_id": "run-1", "status": "started"}
        self.statuses: list[dict[str, Any]] = [{"status": "running"}, {"status": "completed"}]
        self.history: dict[str, Any] = {"total": 0, "returned": 0, "pipelines": []}
        self.cancelled: set[str] = set()
        self.failures: dict[str, int] = {}
        self.transport_failures: dict[str, int] = {}
        self.requests: list[httpx.Request] = []
        self._status_index = 0

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and _local_path(r) == path]

    def bodies(self, method: str, path: str) -> list[Any]:
        return [json.loads(r.content) for r in self.calls(method, path)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = _local_path(request)

        remaining = self.transport_failures.get(path, 0)
        if remaining:
            self.transport_failures[path] = remaining - 1
            raise httpx.ConnectError("Connection refused", request=request)
        if path in self.failures:
            return httpx.Response(self.failures[path], json={"detail": "failure"})

        return self._route(request.method, path, request)

    def _route(self, method: str, path: str, request: httpx.Request) -> httpx.Response:
        parts = path.strip("/").split("/")

        if method == "GET" and parts == ["health"]:
            return httpx.Response(
                200, json={"status": "healthy", "version": "1.0.0", "active_pipelines": 0}
            )
        if method == "GET" and parts == ["stages"]:
            return httpx.Response(200, json=self.catalog)
        if method == "GET" and len(parts) == 2 and parts[0] == "stages":
            pipeline = self.catalog["pipelines"].get(parts[1])
            if pipeline is None:
                return httpx.Response(404, json={"detail": "not found"})
            stages = {n: self.catalog["stages"][n] for n in pipeline["stages"]}
            return httpx.Response(200, json={"pipelines": {parts[1]: pipeline}, "stages": stages})
        if method == "GET" and len(parts) == 3 and parts[0] == "stages":
            source = self.schemas if parts[2] == "config" else self.defaults
            if parts[1] not in source:
                return httpx.Response(404, json={"detail": "not found"})
            return httpx.Response(200, json=source[parts[1]])
        if method == "POST" and parts == ["pipelines", "validate"]:
            return httpx.Response(200, json=self.validation)
        if method == "POST" and parts == ["pipelines", "execute"]:
            return httpx.Response(200, json=self.execute_response)
        if method == "GET" and parts == ["pipelines", "history"]:
            return httpx.Response(200, json=self.history)
        if method == "GET" and len(parts) == 3 and parts[2] == "status":
            return httpx.Response(200, json=self._next_status(parts[1]))
        if method == "POST" and len(parts) == 3 and parts[2] == "cancel":
            self.cancelled.add(parts[1])
            return httpx.Response(200, json={"success": True})

        return httpx.Response(404, json={"detail": f"no route for {method} {path}"})

    def _next_status(self, run_id: str) -> dict[str, Any]:
        if run_id in self.cancelled:
            return {"pipeline_id": run_id, "status": "cancelled"}
        index = min(self._status_index, len(self.statuses) - 1)
        self._status_index += 1
        return {"pipeline_id": run_id, **self.statuses[index]}

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def api_client(
        self,
        *,
        max_retries: int = 0,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> PipelineApiClient:
        kwargs: dict[str, Any] = {"max_retries": max_retries}
        if sleep is not None:
            kwargs["sleep"] = sleep
        return PipelineApiClient(BASE_URL, http_client=self.http_client(), **kwargs)


def _local_path(request: httpx.Request) -> str:
    return request.url.path.removeprefix("/api/v1")


@pytest.fixture(autouse=True)
def clear_console_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate tests from PIPELINE_CONSOLE_* variables set in the shell."""
    for name in (
        "PIPELINE_CONSOLE_API_URL",
        "PIPELINE_CONSOLE_TIMEOUT_SECONDS",
        "PIPELINE_CONSOLE_POLL_INTERVAL_SECONDS",
        "PIPELINE_CONSOLE_MAX_RETRIES",
        "PIPELINE_CONSOLE_RETRY_BASE_DELAY",
        "PIPELINE_CONSOLE_RETRY_MAX_DELAY",
        "PIPELINE_CONSOLE_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_console_logging() -> Iterator[None]:
    """Drop the CLI's stderr handler so it never outlives a captured stream."""
    yield
    package_logger = logging.getLogger(LOGGER_NAME)
    for handler in list(package_logger.handlers):
        if getattr(handler, "_pipeline_console_handler", False):
            package_logger.removeHandler(handler)


@pytest.fixture
def service() -> FakePipelineService:
    return FakePipelineService()


@pytest.fixture
def console(service: FakePipelineService) -> PipelineConsole:
    """Console wired to the fake service with a fast poll interval."""
    return PipelineConsole(service.api_client(), poll_interval_seconds=TEST_POLL_INTERVAL)
