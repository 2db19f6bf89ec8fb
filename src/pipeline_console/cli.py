"""Pipeline console CLI - select, configure and run pipeline stages.

Usage:
    pipeline-console stages [--pipeline NAME]
    pipeline-console validate [SELECTION]
    pipeline-console run [SELECTION] [--wait [--timeout SECONDS]]
    pipeline-console status RUN_ID
    pipeline-console cancel RUN_ID
    pipeline-console history [--limit N]
    pipeline-console health
    pipeline-console serve [--host HOST] [--port PORT]

SELECTION:
    --profile PATH            YAML run profile (pipeline, stages, global, config)
    --pipeline NAME           Pipeline to select
    --stage NAME              Stage to add (repeatable; dependencies added)
    --set STAGE.FIELD=VALUE   Stage field override (repeatable)
    --global KEY=VALUE        Global config value (repeatable)
    --apply-global            Copy global values into every selected stage

Exit codes:
    0: Success / valid / run completed
    1: Pipeline service unreachable or errored / internal error
    2: Invalid input / validation failed / run did not complete
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any

import httpx

from pipeline_console.config import ConsoleSettings, load_settings
from pipeline_console.errors import (
    ApiError,
    ConsoleConfigError,
    FieldValueError,
    PipelineConsoleError,
    ProfileError,
)
from pipeline_console.execution.session import SessionSnapshot
from pipeline_console.logging_setup import configure_logging
from pipeline_console.models.execution import RunStatus
from pipeline_console.profiles import load_profile, parse_scalar
from pipeline_console.services.console import PipelineConsole

logger = logging.getLogger(__name__)

DEFAULT_SERVE_HOST = "127.0.0.1"
DEFAULT_SERVE_PORT = 8000


class UsageError(Exception):
    """Raised when command-line selection options are invalid."""


def _output_json(data: Any) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2, default=str))


def _make_error_result(code: str, message: str) -> dict[str, Any]:
    return {"error": {"code": code, "message": message}, "ok": False}


def _split_assignment(raw: str, option: str) -> tuple[str, str]:
    key, sep, value = raw.partition("=")
    if not sep or not key.strip():
        raise UsageError(f"{option} expects KEY=VALUE, got '{raw}'")
    return key.strip(), value


def _settings_from_args(args: argparse.Namespace) -> ConsoleSettings:
    settings = load_settings()
    overrides: dict[str, Any] = {}
    if getattr(args, "api_url", None):
        overrides["api_url"] = args.api_url.rstrip("/")
    if getattr(args, "log_level", None):
        overrides["log_level"] = args.log_level
    return dataclasses.replace(settings, **overrides) if overrides else settings


async def _prepare_selection(console: PipelineConsole, args: argparse.Namespace) -> None:
    """Apply profile and selection options to the console.

    Raises:
        UsageError: If the options do not describe a valid selection.
        ProfileError: If the profile cannot be loaded.
        PipelineConsoleError: If the catalog cannot be listed.
    """
    catalog = await console.load_catalog()

    if args.profile:
        await console.apply_profile(load_profile(args.profile))

    if args.pipeline and args.pipeline != console.selection.selected_pipeline:
        console.select_pipeline(args.pipeline)

    pipeline = console.selection.selected_pipeline
    if not pipeline:
        raise UsageError("No pipeline selected (use --pipeline or --profile)")
    if not catalog.has_pipeline(pipeline):
        raise UsageError(
            f"Unknown pipeline: '{pipeline}'. Valid options: {sorted(catalog.pipelines)}"
        )

    for stage_name in args.stage or []:
        if catalog.get_stage(stage_name) is None:
            raise UsageError(f"Unknown stage: '{stage_name}'")
        if not console.selection.is_selected(stage_name):
            await console.toggle_stage(stage_name)

    for raw in args.global_values or []:
        key, value = _split_assignment(raw, "--global")
        try:
            console.configuration.set_global_config(**{key: parse_scalar(value)})
        except KeyError as e:
            raise UsageError(e.args[0]) from e

    for raw in args.set_values or []:
        target, value = _split_assignment(raw, "--set")
        stage_name, sep, field_name = target.partition(".")
        if not sep or not field_name:
            raise UsageError(f"--set expects STAGE.FIELD=VALUE, got '{raw}'")
        try:
            console.set_field_from_text(stage_name, field_name, value)
        except FieldValueError as e:
            raise UsageError(f"{stage_name}.{e}") from e

    if args.apply_global:
        console.configuration.apply_global_to_all(console.selection.selected_stages)


def _selection_summary(console: PipelineConsole) -> dict[str, Any]:
    stages = list(console.selection.selected_stages)
    return {
        "config": console.configuration.build_payload(stages),
        "global": console.configuration.global_config.defined(),
        "pipeline": console.selection.selected_pipeline,
        "stages": stages,
    }


def _print_progress(snapshot: SessionSnapshot) -> None:
    status = snapshot.status
    if status is None:
        return
    stage = f" ({status.current_stage})" if status.current_stage else ""
    print(f"[{status.pipeline_id}] {status.status}{stage}", file=sys.stderr)


async def cmd_stages(console: PipelineConsole, args: argparse.Namespace) -> int:
    """List pipelines and stages, optionally for one pipeline."""
    if args.pipeline:
        response = await console.client.list_pipeline_stages(args.pipeline)
    else:
        response = await console.client.list_stages()
    _output_json(response.model_dump(mode="json"))
    return 0


async def cmd_validate(console: PipelineConsole, args: argparse.Namespace) -> int:
    """Validate the selection with the pipeline service.

    Exit codes:
        0: valid
        1: request failed
        2: invalid selection or configuration
    """
    await _prepare_selection(console, args)
    result = await console.controller.validate()
    output = _selection_summary(console)
    if result is None:
        output["errors"] = list(console.controller.session.errors)
        _output_json(output)
        return 1
    output["result"] = result.model_dump(mode="json")
    _output_json(output)
    return 0 if result.valid else 2


async def cmd_run(console: PipelineConsole, args: argparse.Namespace) -> int:
    """Execute the selection; with --wait, poll until the run ends.

    Exit codes:
        0: started (or completed, with --wait)
        1: request failed or wait timed out
        2: run ended in a non-completed status
    """
    await _prepare_selection(console, args)
    if args.wait:
        console.controller.subscribe(_print_progress)

    run_id = await console.controller.execute()
    output = _selection_summary(console)
    output["run_id"] = run_id
    if run_id is None:
        output["errors"] = list(console.controller.session.errors)
        _output_json(output)
        return 1

    if not args.wait:
        _output_json(output)
        return 0

    try:
        snapshot = await console.controller.wait_for_completion(timeout=args.timeout)
    except TimeoutError:
        output["errors"] = [f"Run {run_id} still active after {args.timeout}s"]
        _output_json(output)
        return 1

    status = snapshot.status
    output["status"] = status.model_dump(mode="json") if status is not None else None
    _output_json(output)
    return 0 if status is not None and status.status == RunStatus.COMPLETED else 2


async def cmd_status(console: PipelineConsole, args: argparse.Namespace) -> int:
    status = await console.client.get_status(args.run_id)
    _output_json(status.model_dump(mode="json"))
    return 0


async def cmd_cancel(console: PipelineConsole, args: argparse.Namespace) -> int:
    result = await console.client.cancel(args.run_id)
    _output_json(result.model_dump(mode="json"))
    return 0 if result.success else 2


async def cmd_history(console: PipelineConsole, args: argparse.Namespace) -> int:
    history = await console.client.get_history(limit=args.limit)
    _output_json(history.model_dump(mode="json"))
    return 0


async def cmd_health(console: PipelineConsole, args: argparse.Namespace) -> int:
    health = await console.client.get_health()
    _output_json(health.model_dump(mode="json"))
    return 0


ASYNC_COMMANDS = {
    "stages": cmd_stages,
    "validate": cmd_validate,
    "run": cmd_run,
    "status": cmd_status,
    "cancel": cmd_cancel,
    "history": cmd_history,
    "health": cmd_health,
}


def cmd_serve(args: argparse.Namespace, settings: ConsoleSettings) -> int:
    """Serve the console HTTP API with uvicorn until interrupted."""
    import uvicorn

    from pipeline_console.api.main import create_app

    app = create_app(settings=settings)
    logger.info(f"Serving console API on {args.host}:{args.port} against {settings.api_url}")
    uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())
    return 0


async def _run_command(
    args: argparse.Namespace,
    settings: ConsoleSettings,
    http_client: httpx.AsyncClient | None,
) -> int:
    command = ASYNC_COMMANDS[args.command]
    async with PipelineConsole.from_settings(settings, http_client=http_client) as console:
        return await command(console, args)


def _add_selection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--profile", metavar="PATH", help="YAML run profile")
    parser.add_argument("--pipeline", metavar="NAME", help="Pipeline to select")
    parser.add_argument(
        "--stage",
        action="append",
        metavar="NAME",
        help="Stage to select; its dependencies are added too (repeatable)",
    )
    parser.add_argument(
        "--set",
        dest="set_values",
        action="append",
        metavar="STAGE.FIELD=VALUE",
        help="Override one stage field (repeatable)",
    )
    parser.add_argument(
        "--global",
        dest="global_values",
        action="append",
        metavar="KEY=VALUE",
        help="Set a global config value: db_name, concurrency, verbose, dry_run",
    )
    parser.add_argument(
        "--apply-global",
        action="store_true",
        default=False,
        help="Copy global values into every selected stage before submitting",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="pipeline-console",
        description="Select, configure, validate and run pipeline stages",
    )
    parser.add_argument(
        "--api-url",
        metavar="URL",
        help="Pipeline service base URL (overrides PIPELINE_CONSOLE_API_URL)",
    )
    parser.add_argument(
        "--log-level",
        metavar="LEVEL",
        help="Logging level (overrides PIPELINE_CONSOLE_LOG_LEVEL)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    stages_parser = subparsers.add_parser("stages", help="List pipelines and stages")
    stages_parser.add_argument("--pipeline", metavar="NAME", help="Only this pipeline")

    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a selection without running it",
    )
    _add_selection_arguments(validate_parser)

    run_parser = subparsers.add_parser("run", help="Execute a selection")
    _add_selection_arguments(run_parser)
    run_parser.add_argument(
        "--wait",
        action="store_true",
        default=False,
        help="Poll status until the run reaches a terminal state",
    )
    run_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Give up waiting after this many seconds",
    )

    status_parser = subparsers.add_parser("status", help="Show the status of a run")
    status_parser.add_argument("run_id", metavar="RUN_ID")

    cancel_parser = subparsers.add_parser("cancel", help="Cancel a run")
    cancel_parser.add_argument("run_id", metavar="RUN_ID")

    history_parser = subparsers.add_parser("history", help="List recent runs")
    history_parser.add_argument("--limit", type=int, default=10, metavar="N")

    subparsers.add_parser("health", help="Check the pipeline service")

    serve_parser = subparsers.add_parser("serve", help="Serve the console HTTP API")
    serve_parser.add_argument("--host", default=DEFAULT_SERVE_HOST)
    serve_parser.add_argument("--port", type=int, default=DEFAULT_SERVE_PORT)

    return parser


def main(argv: list[str] | None = None, http_client: httpx.AsyncClient | None = None) -> int:
    """Main entry point.

    Args:
        argv: Arguments; defaults to sys.argv.
        http_client: Optional client for the pipeline service, for testing.

    Exit codes:
        0: Success
        1: Pipeline service error / internal error
        2: Invalid input / validation failed / run did not complete
    """
    try:
        parser = create_parser()
        args = parser.parse_args(argv)

        if args.command is None:
            parser.print_help()
            return 0

        settings = _settings_from_args(args)
        configure_logging(settings.log_level)

        if args.command == "serve":
            return cmd_serve(args, settings)

        return asyncio.run(_run_command(args, settings, http_client))

    except (UsageError, ProfileError) as e:
        _output_json(_make_error_result("INVALID_INPUT", str(e)))
        return 2
    except ConsoleConfigError as e:
        _output_json(_make_error_result("INVALID_CONFIG", str(e)))
        return 2
    except ApiError as e:
        _output_json(_make_error_result(f"API_ERROR_{e.status_code}", e.message))
        return 1
    except PipelineConsoleError as e:
        _output_json(_make_error_result("SERVICE_UNAVAILABLE", str(e)))
        return 1
    except Exception as e:
        # Fail-closed: unexpected errors return exit code 1
        logger.debug("Unhandled CLI error", exc_info=True)
        _output_json(_make_error_result("INTERNAL_ERROR", str(e)))
        return 1


if __name__ == "__main__":
    sys.exit(main())
