"""Tests for ExecutionController.

Uses httpx.MockTransport and a fast poll interval; every scenario runs in its
own event loop via asyncio.run.

Verifies:
- validate/execute/cancel record remote failures in the error log, never raise
- Execute seeds a "starting" status, then polls until a terminal status
- Every terminal status stops the poll timer
- Poll transport failures are logged, not added to the error log
- An older status response never overwrites a newer one
- At most one poll timer exists; aclose/reset/context exit stop it, and
  aclose waits for the cancelled timer
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from pipeline_console.client.api import PipelineApiClient
from pipeline_console.execution.controller import ExecutionController, new_experiment_id
from pipeline_console.execution.session import SessionSnapshot
from pipeline_console.models.catalog import StagesResponse
from pipeline_console.models.execution import RunStatus
from pipeline_console.state.catalog import StageCatalog
from pipeline_console.state.configuration import ConfigurationState
from pipeline_console.state.selection import SelectionState

POLL = 0.01
STATUS_PATH = "/pipelines/run-1/status"


def _controller(
    service: Any,
    *,
    client: PipelineApiClient | None = None,
    select: bool = True,
    metadata: dict[str, Any] | None = None,
) -> ExecutionController:
    catalog = StageCatalog.from_response(StagesResponse.model_validate(service.catalog))
    selection = SelectionState(catalog)
    if select:
        selection.select_pipeline("P")
        selection.toggle("B")
    configuration = ConfigurationState()
    return ExecutionController(
        client or service.api_client(),
        selection,
        configuration,
        poll_interval_seconds=POLL,
        metadata_provider=(lambda: metadata) if metadata is not None else None,
    )


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(POLL / 2)

    await asyncio.wait_for(poll(), timeout)


class TestValidate:
    def test_no_pipeline_is_a_no_op(self, service: Any) -> None:
        controller = _controller(service, select=False)
        assert asyncio.run(controller.validate()) is None
        assert service.calls("POST", "/pipelines/validate") == []
        assert controller.session.errors == ()

    def test_result_is_stored(self, service: Any) -> None:
        service.validation = {"valid": False, "errors": {"B": ["batch too large"]}}
        controller = _controller(service)
        seen: list[SessionSnapshot] = []
        controller.subscribe(seen.append)

        result = asyncio.run(controller.validate())

        assert result is not None and not result.valid
        assert controller.session.validation_result == result
        assert not controller.session.validation_in_flight
        assert any(s.validation_in_flight for s in seen)
        assert service.bodies("POST", "/pipelines/validate")[0]["stages"] == ["B", "A"]

    def test_failures_accumulate_until_cleared(self, service: Any) -> None:
        service.failures["/pipelines/validate"] = 500
        controller = _controller(service)

        async def scenario() -> None:
            await controller.validate()
            await controller.validate()

        asyncio.run(scenario())

        assert controller.session.errors == (
            "API Error: Internal Server Error",
            "API Error: Internal Server Error",
        )
        assert not controller.session.validation_in_flight

        controller.clear_errors()
        assert controller.session.errors == ()

    def test_transport_failure_message(self, service: Any) -> None:
        service.transport_failures["/pipelines/validate"] = 1
        controller = _controller(service)
        asyncio.run(controller.validate())
        (message,) = controller.session.errors
        assert "failed" in message


class TestExecute:
    def test_no_pipeline_is_a_no_op(self, service: Any) -> None:
        controller = _controller(service, select=False)
        assert asyncio.run(controller.execute()) is None
        assert service.calls("POST", "/pipelines/execute") == []

    def test_seeds_starting_status(self, service: Any) -> None:
        controller = _controller(service)

        async def scenario() -> SessionSnapshot:
            async with controller:
                run_id = await controller.execute()
                assert run_id == "run-1"
                assert controller.is_polling
                return controller.session

        snapshot = asyncio.run(scenario())

        assert snapshot.run_id == "run-1"
        assert snapshot.status is not None
        assert snapshot.status.status == RunStatus.STARTING
        assert snapshot.status.pipeline_id == "run-1"
        assert not snapshot.execution_in_flight

    def test_error_field_is_recorded(self, service: Any) -> None:
        service.execute_response = {"error": "Pipeline busy"}
        controller = _controller(service)

        assert asyncio.run(controller.execute()) is None

        assert controller.session.errors == ("Pipeline busy",)
        assert controller.session.run_id is None
        assert not controller.is_polling

    def test_missing_run_id_is_recorded(self, service: Any) -> None:
        service.execute_response = {"status": "started"}
        controller = _controller(service)
        assert asyncio.run(controller.execute()) is None
        assert len(controller.session.errors) == 1

    def test_transport_failure_is_recorded(self, service: Any) -> None:
        service.transport_failures["/pipelines/execute"] = 1
        controller = _controller(service)
        assert asyncio.run(controller.execute()) is None
        assert len(controller.session.errors) == 1
        assert not controller.session.execution_in_flight

    def test_metadata_and_experiment_ids(self, service: Any) -> None:
        controller = _controller(service, metadata={"source": "lectures"})

        async def scenario() -> None:
            async with controller:
                await controller.execute()
                await controller.execute()

        asyncio.run(scenario())

        first, second = (b["metadata"] for b in service.bodies("POST", "/pipelines/execute"))
        assert first["source"] == "lectures"
        assert first["experiment_id"].startswith("exp_")
        assert first["experiment_id"] != second["experiment_id"]

    def test_payload_only_has_selected_stages(self, service: Any) -> None:
        controller = _controller(service)
        configuration = controller._configuration
        configuration.set_global_config(concurrency=None, verbose=None, dry_run=None)
        configuration.set_defaults("A", {"x": 1})
        configuration.set_defaults("C", {"z": 3})

        async def scenario() -> None:
            async with controller:
                await controller.execute()

        asyncio.run(scenario())

        (body,) = service.bodies("POST", "/pipelines/execute")
        assert body["pipeline"] == "P"
        assert body["config"] == {"A": {"x": 1}}

    def test_keeps_errors_but_clears_previous_status(self, service: Any) -> None:
        service.failures["/pipelines/validate"] = 500
        controller = _controller(service)
        seen: list[SessionSnapshot] = []

        async def scenario() -> None:
            async with controller:
                await controller.validate()
                controller.subscribe(seen.append)
                await controller.execute()

        asyncio.run(scenario())

        assert seen[0].execution_in_flight
        assert seen[0].status is None
        assert len(controller.session.errors) == 1

    def test_experiment_id_format(self) -> None:
        token = new_experiment_id()
        assert token.startswith("exp_")
        assert len(token) == len("exp_") + 32


class TestPolling:
    @pytest.mark.parametrize(
        "terminal", ["completed", "failed", "error", "cancelled", "interrupted"]
    )
    def test_terminal_status_stops_polling(self, service: Any, terminal: str) -> None:
        service.statuses = [{"status": "running", "current_stage": "A"}, {"status": terminal}]
        controller = _controller(service)

        async def scenario() -> int:
            async with controller:
                await controller.execute()
                await controller.wait_for_completion(timeout=2.0)
                assert not controller.is_polling
                polled = len(service.calls("GET", STATUS_PATH))
                await asyncio.sleep(POLL * 5)
                assert len(service.calls("GET", STATUS_PATH)) == polled
                return polled

        polled = asyncio.run(scenario())

        assert polled >= 2
        assert controller.session.status is not None
        assert controller.session.status.status == terminal

    def test_non_terminal_status_keeps_polling(self, service: Any) -> None:
        service.statuses = [{"status": "running"}]
        controller = _controller(service)

        async def scenario() -> None:
            async with controller:
                await controller.execute()
                await _wait_until(lambda: len(service.calls("GET", STATUS_PATH)) >= 3)
                assert controller.is_polling

        asyncio.run(scenario())
        assert not controller.is_polling

    def test_poll_transport_failure_keeps_polling(self, service: Any) -> None:
        service.statuses = [{"status": "completed"}]
        service.transport_failures[STATUS_PATH] = 2
        controller = _controller(service)

        async def scenario() -> None:
            async with controller:
                await controller.execute()
                await controller.wait_for_completion(timeout=2.0)

        asyncio.run(scenario())

        assert controller.session.errors == ()
        assert controller.session.status is not None
        assert controller.session.status.status == "completed"
        assert len(service.calls("GET", STATUS_PATH)) >= 3

    def test_poll_http_error_keeps_polling(self, service: Any) -> None:
        service.statuses = [{"status": "running"}]
        service.failures[STATUS_PATH] = 503
        controller = _controller(service)

        async def scenario() -> None:
            async with controller:
                await controller.execute()
                await _wait_until(lambda: len(service.calls("GET", STATUS_PATH)) >= 2)
                service.failures.clear()
                service.statuses = [{"status": "completed"}]
                await controller.wait_for_completion(timeout=2.0)

        asyncio.run(scenario())
        assert controller.session.errors == ()

    def test_stale_response_is_discarded(self, service: Any) -> None:
        async def scenario() -> str | None:
            release_first = asyncio.Event()
            never = asyncio.Event()
            polls = 0

            async def handler(request: httpx.Request) -> httpx.Response:
                nonlocal polls
                if not request.url.path.endswith("/status"):
                    return service.handler(request)
                polls += 1
                if polls == 1:
                    await release_first.wait()
                    return httpx.Response(200, json={"status": "running", "current_stage": "A"})
                if polls == 2:
                    return httpx.Response(200, json={"status": "running", "current_stage": "B"})
                await never.wait()
                raise AssertionError("unreachable")

            client = PipelineApiClient(
                "http://pipeline.test/api/v1",
                http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
                max_retries=0,
            )
            controller = _controller(service, client=client)

            def current_stage() -> str | None:
                status = controller.session.status
                return status.current_stage if status is not None else None

            async with controller:
                await controller.execute()
                await _wait_until(lambda: current_stage() == "B")
                release_first.set()
                await asyncio.sleep(POLL * 3)
                return current_stage()

        assert asyncio.run(scenario()) == "B"

    def test_wait_without_run_returns_immediately(self, service: Any) -> None:
        controller = _controller(service)
        snapshot = asyncio.run(controller.wait_for_completion(timeout=0.1))
        assert snapshot.run_id is None


class TestCancel:
    def test_without_run_is_a_no_op(self, service: Any) -> None:
        controller = _controller(service)
        assert asyncio.run(controller.cancel()) is False
        assert not [r for r in service.requests if r.url.path.endswith("/cancel")]

    def test_cancel_is_observed_by_polling(self, service: Any) -> None:
        service.statuses = [{"status": "running"}]
        controller = _controller(service)

        async def scenario() -> bool:
            async with controller:
                await controller.execute()
                accepted = await controller.cancel()
                await controller.wait_for_completion(timeout=2.0)
                return accepted

        assert asyncio.run(scenario()) is True
        assert len(service.calls("POST", "/pipelines/run-1/cancel")) == 1
        assert controller.session.status is not None
        assert controller.session.status.status == "cancelled"

    def test_cancel_failure_is_recorded(self, service: Any) -> None:
        service.statuses = [{"status": "running"}]
        service.failures["/pipelines/run-1/cancel"] = 500
        controller = _controller(service)

        async def scenario() -> bool:
            async with controller:
                await controller.execute()
                accepted = await controller.cancel()
                assert controller.is_polling
                return accepted

        assert asyncio.run(scenario()) is False
        assert controller.session.errors == ("API Error: Internal Server Error",)


class TestTeardown:
    def test_aclose_stops_timer(self, service: Any) -> None:
        service.statuses = [{"status": "running"}]
        controller = _controller(service)

        async def scenario() -> None:
            await controller.execute()
            await _wait_until(lambda: len(service.calls("GET", STATUS_PATH)) >= 1)
            await controller.aclose()
            polled = len(service.calls("GET", STATUS_PATH))
            await asyncio.sleep(POLL * 5)
            assert len(service.calls("GET", STATUS_PATH)) == polled

        asyncio.run(scenario())
        assert not controller.is_polling

    def test_aclose_waits_for_cancelled_timer(self, service: Any) -> None:
        service.statuses = [{"status": "running"}]
        controller = _controller(service)

        async def scenario() -> None:
            await controller.execute()
            timer = controller._poll_timer
            assert timer is not None
            await controller.aclose()
            assert timer.done()
            assert timer.cancelled()

        asyncio.run(scenario())

    def test_unexpected_tick_failure_is_logged(
        self, service: Any, caplog: pytest.LogCaptureFixture
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/status"):
                raise RuntimeError("status decoder exploded")
            return service.handler(request)

        client = PipelineApiClient(
            "http://pipeline.test/api/v1",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            max_retries=0,
        )
        controller = _controller(service, client=client)

        async def scenario() -> None:
            async with controller:
                await controller.execute()
                await _wait_until(lambda: "Status poll tick failed" in caplog.text)

        with caplog.at_level("ERROR", logger="pipeline_console"):
            asyncio.run(scenario())

        assert "status decoder exploded" in caplog.text
        assert controller.session.errors == ()
        assert not controller.is_polling

    def test_new_poll_loop_replaces_previous(self, service: Any) -> None:
        service.statuses = [{"status": "running"}]
        controller = _controller(service)

        async def scenario() -> None:
            async with controller:
                controller.start_polling("run-a")
                controller.start_polling("run-b")
                await _wait_until(
                    lambda: len(service.calls("GET", "/pipelines/run-b/status")) >= 2
                )

        asyncio.run(scenario())
        assert service.calls("GET", "/pipelines/run-a/status") == []

    def test_reset_stops_polling_and_clears_session(self, service: Any) -> None:
        service.statuses = [{"status": "running"}]
        service.failures["/pipelines/validate"] = 500
        controller = _controller(service)

        async def scenario() -> None:
            await controller.validate()
            await controller.execute()
            controller.reset()

        asyncio.run(scenario())

        assert not controller.is_polling
        assert controller.session == SessionSnapshot()

    def test_clear_status_forgets_run(self, service: Any) -> None:
        controller = _controller(service)

        async def scenario() -> None:
            async with controller:
                await controller.validate()
                await controller.execute()
                await controller.wait_for_completion(timeout=2.0)

        asyncio.run(scenario())
        controller.clear_status()

        snapshot = controller.session
        assert snapshot.run_id is None
        assert snapshot.status is None
        assert snapshot.validation_result is None
        assert snapshot.errors == ()


class TestSubscribe:
    def test_unsubscribe(self, service: Any) -> None:
        controller = _controller(service)
        seen: list[SessionSnapshot] = []
        unsubscribe = controller.subscribe(seen.append)

        asyncio.run(controller.validate())
        count = len(seen)
        unsubscribe()
        asyncio.run(controller.validate())

        assert count == 2
        assert len(seen) == count

    def test_failing_listener_does_not_break_operations(self, service: Any) -> None:
        controller = _controller(service)

        def broken(snapshot: SessionSnapshot) -> None:
            raise RuntimeError("listener bug")

        controller.subscribe(broken)
        result = asyncio.run(controller.validate())
        assert result is not None and result.valid
