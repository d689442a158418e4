from __future__ import annotations

import dataclasses
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.render import render_summary
from logging_config import configure_logging
from models.errors import ForwarderError
from services.forwarder import Forwarder, build_sink
from settings import Settings, get_settings, parse_sink_type
from sources.lines import LineSource


@dataclass
class CLIState:
    settings: Settings


app = typer.Typer(
    help="Forward Ruuvi sensor telemetry from newline-delimited JSON to a sink.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


@app.callback()
def main(
    ctx: typer.Context,
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Logging level (defaults to LOG_LEVEL env or INFO).",
    ),
) -> None:
    """Entry point for the CLI."""
    try:
        settings = get_settings()
    except ValueError as exc:
        _fail(str(exc))
    configure_logging(log_level.upper() if log_level else settings.log_level)
    ctx.obj = CLIState(settings=settings)


@app.command("forward")
def forward_command(
    ctx: typer.Context,
    sink: Optional[str] = typer.Option(
        None,
        "--sink",
        "-s",
        help="Sink to write to: console, jsonlines, duckdb or http (defaults to RUUVI_SINK_TYPE).",
    ),
    input_path: Optional[Path] = typer.Option(
        None,
        "--input",
        "-i",
        exists=True,
        dir_okay=False,
        readable=True,
        help="Read from a file instead of stdin.",
    ),
    summary: bool = typer.Option(
        True,
        "--summary/--no-summary",
        help="Print a run summary to stderr when input ends.",
    ),
) -> None:
    """Read telemetry lines until end of input and forward them to the sink."""
    state = _get_state(ctx)
    settings = state.settings
    if sink is not None:
        try:
            settings = dataclasses.replace(settings, sink_type=parse_sink_type(sink))
        except ValueError as exc:
            _fail(str(exc))

    try:
        telemetry_sink = build_sink(settings)
    except ValueError as exc:
        _fail(str(exc))

    try:
        if input_path is None:
            stats = Forwarder(LineSource(sys.stdin.buffer).events(), telemetry_sink).run()
        else:
            with input_path.open("rb") as handle:
                stats = Forwarder(LineSource(handle).events(), telemetry_sink).run()
    except ForwarderError as exc:
        _fail(f"Forwarding failed: {exc}")

    if summary:
        render_summary(telemetry_sink.name, telemetry_sink.target, stats)
