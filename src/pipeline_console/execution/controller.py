"""ExecutionController — validate, execute, poll and cancel pipeline runs.

Reads the current SelectionState and ConfigurationState, talks to the
pipeline service, and owns the ExecutionSession.

Lifecycle per attempt:
    idle -> validating -> validated            (repeatable, independent)
    idle -> executing -> polling -> terminal   (completed/failed/error/
                                                cancelled/interrupted)

Polling: once a run id is assigned, a timer task fires every
``poll_interval_seconds`` and each tick issues one status request. Ticks
carry increasing sequence numbers and a response older than the last applied
one is discarded, so a slow response never overwrites a newer status. The
timer stops as soon as a terminal status is applied. Transport failures while
polling are logged and the loop keeps going.

Cancellation is observational: cancel() asks the service to stop the run and
the next poll tick observes the ``cancelled`` status.

No operation raises for remote failures; they are appended to the session
error log. The controller holds at most one poll timer; entering a new poll
loop clears the previous one, and aclose() (or leaving ``async with``) clears
it on teardown.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Callable, Mapping
from typing import Any

from pipeline_console.client.api import PipelineApiClient
from pipeline_console.config import DEFAULT_POLL_INTERVAL_SECONDS
from pipeline_console.errors import PipelineConsoleError
from pipeline_console.execution.session import ExecutionSession, SessionSnapshot
from pipeline_console.models.execution import PipelineStatus, ValidationResult
from pipeline_console.state.configuration import ConfigurationState
from pipeline_console.state.selection import SelectionState

logger = logging.getLogger(__name__)

MetadataProvider = Callable[[], Mapping[str, Any]]
SessionListener = Callable[[SessionSnapshot], None]


def new_experiment_id() -> str:
    """Unique token identifying one execute() call."""
    return f"exp_{uuid.uuid4().hex}"


class ExecutionController:
    """Drives the validate/execute/poll/cancel state machine.

    Args:
        client: Pipeline service client.
        selection: Selection to read pipeline and stages from.
        configuration: Configuration to build the per-stage payload from.
        poll_interval_seconds: Period of the status poll timer.
        metadata_provider: Optional callable whose mapping is merged into the
            execute metadata (e.g. source filter information).
    """

    def __init__(
        self,
        client: PipelineApiClient,
        selection: SelectionState,
        configuration: ConfigurationState,
        *,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        metadata_provider: MetadataProvider | None = None,
    ) -> None:
        self._client = client
        self._selection = selection
        self._configuration = configuration
        self._poll_interval = poll_interval_seconds
        self._metadata_provider = metadata_provider

        self._session = ExecutionSession()
        self._listeners: list[SessionListener] = []

        self._poll_timer: asyncio.Task[None] | None = None
        self._poll_done: asyncio.Event | None = None
        self._poll_run_id: str | None = None
        self._tick_tasks: set[asyncio.Task[None]] = set()
        self._issued_seq = 0
        self._applied_seq = 0

    async def __aenter__(self) -> ExecutionController:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def session(self) -> SessionSnapshot:
        """Current session state as an immutable snapshot."""
        return self._session.snapshot()

    @property
    def is_polling(self) -> bool:
        return self._poll_timer is not None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a callback invoked with a snapshot after every transition.

        Returns:
            A function that unregisters the callback.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self._session.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Session listener failed: {e}", exc_info=True)

    async def validate(self) -> ValidationResult | None:
        """Validate the current selection and configuration with the service.

        Returns:
            The validation result, or None when no pipeline is selected or the
            request failed (the failure is appended to the error log).
        """
        pipeline = self._selection.selected_pipeline
        if not pipeline:
            return None

        stages = list(self._selection.selected_stages)
        payload = self._configuration.build_payload(stages)

        self._session.validation_in_flight = True
        self._notify()
        try:
            result = await self._client.validate(pipeline, stages, payload)
            self._session.validation_result = result
            logger.info(
                f"Validated pipeline {pipeline}: valid={result.valid}",
                extra={"pipeline": pipeline, "stages": stages},
            )
            return result
        except PipelineConsoleError as e:
            logger.error(f"Validation of {pipeline} failed: {e}", extra={"pipeline": pipeline})
            self._session.add_error(str(e) or "Validation failed")
            return None
        finally:
            self._session.validation_in_flight = False
            self._notify()

    async def execute(self) -> str | None:
        """Start a run for the current selection and begin polling it.

        Returns:
            The run id assigned by the service, or None if nothing was started.
        """
        pipeline = self._selection.selected_pipeline
        if not pipeline:
            return None

        stages = list(self._selection.selected_stages)
        payload = self._configuration.build_payload(stages)
        metadata: dict[str, Any] = {}
        if self._metadata_provider is not None:
            metadata.update(self._metadata_provider())
        metadata["experiment_id"] = new_experiment_id()

        self._session.status = None
        self._session.execution_in_flight = True
        self._notify()
        try:
            result = await self._client.execute(pipeline, stages, payload, metadata)
            if result.error:
                logger.error(
                    f"Execution of {pipeline} rejected: {result.error}",
                    extra={"pipeline": pipeline},
                )
                self._session.add_error(result.error)
                return None
            if not result.pipeline_id:
                self._session.add_error("Execution response carried no pipeline id")
                return None

            run_id = result.pipeline_id
            self._session.run_id = run_id
            logger.info(
                f"Started run {run_id} for pipeline {pipeline}",
                extra={"run_id": run_id, "pipeline": pipeline, "stages": stages},
            )
            self.start_polling(run_id)
            return run_id
        except PipelineConsoleError as e:
            logger.error(f"Execution of {pipeline} failed: {e}", extra={"pipeline": pipeline})
            self._session.add_error(str(e) or "Execution failed")
            return None
        finally:
            self._session.execution_in_flight = False
            self._notify()

    async def cancel(self) -> bool:
        """Ask the service to cancel the current run.

        Reads the run id at call time. Polling is left running; the next tick
        observes the cancelled status.

        Returns:
            True when the service accepted the request.
        """
        run_id = self._session.run_id
        if not run_id:
            return False

        try:
            result = await self._client.cancel(run_id)
        except PipelineConsoleError as e:
            logger.error(f"Cancel of run {run_id} failed: {e}", extra={"run_id": run_id})
            self._session.add_error(str(e) or "Cancel failed")
            self._notify()
            return False

        logger.info(f"Cancel requested for run {run_id}", extra={"run_id": run_id})
        return result.success

    def start_polling(self, run_id: str) -> None:
        """Start the poll timer for ``run_id``, replacing any running timer.

        Must be called from inside a running event loop.
        """
        self.stop_polling()

        self._poll_run_id = run_id
        self._poll_done = asyncio.Event()
        self._session.seed_starting_status(run_id)
        self._poll_timer = asyncio.create_task(self._run_timer(run_id))
        self._notify()
        logger.debug(f"Polling run {run_id} every {self._poll_interval}s")

    def stop_polling(self) -> None:
        """Cancel the poll timer and any status requests still in flight."""
        current = asyncio.current_task() if self._has_running_loop() else None

        if self._poll_timer is not None:
            self._poll_timer.cancel()
            self._poll_timer = None
        for task in list(self._tick_tasks):
            if task is not current:
                task.cancel()
        self._tick_tasks.clear()
        self._poll_run_id = None
        if self._poll_done is not None:
            self._poll_done.set()

    @staticmethod
    def _has_running_loop() -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    async def _run_timer(self, run_id: str) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            self._issued_seq += 1
            tick = asyncio.create_task(self._poll_once(run_id, self._issued_seq))
            self._tick_tasks.add(tick)
            tick.add_done_callback(self._tick_finished)

    def _tick_finished(self, task: asyncio.Task[None]) -> None:
        self._tick_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Status poll tick failed: {error}", exc_info=error)

    async def _poll_once(self, run_id: str, seq: int) -> None:
        try:
            status = await self._client.get_status(run_id)
        except PipelineConsoleError as e:
            logger.warning(
                f"Status poll for run {run_id} failed, retrying: {e}",
                extra={"run_id": run_id},
            )
            return

        if run_id != self._poll_run_id or seq <= self._applied_seq:
            logger.debug(f"Discarding stale status for run {run_id} (tick {seq})")
            return

        self._apply_status(status, seq)

    def _apply_status(self, status: PipelineStatus, seq: int) -> None:
        self._applied_seq = seq
        self._session.status = status
        if status.is_terminal:
            logger.info(
                f"Run {status.pipeline_id} finished with status {status.status}",
                extra={"run_id": status.pipeline_id, "status": status.status},
            )
            self.stop_polling()
        self._notify()

    async def wait_for_completion(self, timeout: float | None = None) -> SessionSnapshot:
        """Wait until the current poll loop ends.

        Args:
            timeout: Seconds to wait; None waits indefinitely.

        Returns:
            Session snapshot after polling stopped.

        Raises:
            TimeoutError: If the loop is still running after ``timeout``.
        """
        if self._poll_done is not None:
            await asyncio.wait_for(self._poll_done.wait(), timeout)
        return self.session

    def clear_errors(self) -> None:
        self._session.clear_errors()
        self._notify()

    def clear_status(self) -> None:
        self._session.clear_status()
        self._notify()

    def reset(self) -> None:
        """Stop polling and restore the session to its initial state."""
        self.stop_polling()
        self._session.reset()
        self._notify()

    async def aclose(self) -> None:
        """Cancel the poll timer and wait for it to finish; safe to call more than once."""
        current = asyncio.current_task()
        timer = self._poll_timer
        ticks = [t for t in self._tick_tasks if t is not current]
        self.stop_polling()
        if timer is not None and timer is not current:
            with contextlib.suppress(asyncio.CancelledError):
                await timer
        if ticks:
            # Tick failures are logged by _tick_finished.
            await asyncio.wait(ticks)
