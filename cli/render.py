from __future__ import annotations

from typing import Any, Iterable

import typer

from services.forwarder import ForwarderStats


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True, err=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}", err=True)


def render_summary(sink_name: str, target: str, stats: ForwarderStats) -> None:
    """Print a run summary to stderr, leaving stdout to the console sink."""
    echo_heading("Forwarding Summary")
    echo_key_values(
        [
            ("sink", sink_name),
            ("target", target),
            ("records_read", stats.records_read),
            ("parse_failures", stats.parse_failures),
            ("batches_sent", stats.batches_sent),
            ("records_sent", stats.records_sent),
            ("records_dropped", stats.records_dropped),
            ("elapsed_ms", stats.elapsed_ms),
        ]
    )
    if stats.parse_failures:
        typer.secho(
            f"{stats.parse_failures} line(s) could not be parsed; see log for details.",
            fg=typer.colors.YELLOW,
            err=True,
        )
