"""Pipeline wiring: source -> batcher -> sink."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from models.errors import ParseFailure, SinkError
from models.records import TelemetryRecord
from services.batcher import Batcher
from settings import Settings, SinkType
from sinks.base import TelemetrySink
from sinks.console import ConsoleSink
from sinks.database import DuckDBSink
from sinks.http_api import HttpSink
from sinks.jsonlines import JsonLinesSink
from sources.lines import SourceEvent

logger = logging.getLogger(__name__)


@dataclass
class ForwarderStats:
    """Counters for a single forwarder run.

    ``records_sent`` counts what the sink reported as delivered and
    ``records_dropped`` the rest of each dispatched batch. ``batches_sent``
    only counts batches with at least one delivered record.
    """

    records_read: int = 0
    parse_failures: int = 0
    batches_sent: int = 0
    records_sent: int = 0
    records_dropped: int = 0
    elapsed_ms: Optional[int] = None


class Forwarder:
    """Moves records from a source to a sink, one batch at a time."""

    def __init__(self, source: Iterable[SourceEvent], sink: TelemetrySink) -> None:
        self.source = source
        self.sink = sink
        self.stats = ForwarderStats()
        self.batcher = Batcher(
            max_size=sink.desired_batch_size,
            max_latency=sink.desired_max_batch_latency,
        )

    def run(self) -> ForwarderStats:
        """Forward until the source reports end of input.

        Parse failures are logged and skipped. Sink errors are logged and
        re-raised; the sink is closed on every exit path.
        """
        start_time = time.perf_counter()
        logger.info(
            "Forwarding telemetry (batch size %d, max latency %s)",
            self.batcher.max_size,
            "none" if self.batcher.max_latency is None else f"{self.batcher.max_latency}s",
            extra={"sink": self.sink.name, "target": self.sink.target},
        )

        with self.sink:
            for batch in self.batcher.batches(self._records()):
                self._dispatch(batch)

        self.stats.elapsed_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "Stream completed - shutting down",
            extra={"sink": self.sink.name, "record_count": self.stats.records_sent},
        )
        return self.stats

    def _records(self) -> Iterator[TelemetryRecord]:
        for event in self.source:
            if isinstance(event, ParseFailure):
                self.stats.parse_failures += 1
                logger.error(
                    "Error parsing telemetry: %s", event,
                    extra={"line_number": event.line_number},
                )
                continue
            self.stats.records_read += 1
            yield event

    def _dispatch(self, batch: list[TelemetryRecord]) -> None:
        try:
            delivered = self.sink.consume(batch)
        except SinkError as exc:
            logger.error(
                "Sink failed, stopping: %s", exc,
                extra={"sink": self.sink.name, "target": self.sink.target, "record_count": len(batch)},
            )
            raise
        self.stats.records_sent += delivered
        self.stats.records_dropped += len(batch) - delivered
        if delivered:
            self.stats.batches_sent += 1


def build_sink(settings: Settings) -> TelemetrySink:
    """Create the sink selected by ``settings.sink_type``."""
    sink_type = settings.sink_type

    if sink_type is SinkType.console:
        logger.info("Using Console sink (stdout)")
        return ConsoleSink()

    if sink_type is SinkType.jsonlines:
        config = settings.json_lines
        if config is None:
            raise ValueError("JSON Lines sink selected but configuration is missing")
        logger.info("Using JSON Lines sink: %s", config.path)
        return JsonLinesSink(path=config.path, debug_logging=config.debug_logging)

    if sink_type is SinkType.duckdb:
        config = settings.duckdb
        if config is None:
            raise ValueError("DuckDB sink selected but configuration is missing")
        if config.ducklake_enabled and config.ducklake is None:
            raise ValueError("DuckLake enabled but configuration is missing")
        logger.info(
            "Using DuckDB sink: %s (table %s, batch size %d, batch latency %ds, ducklake %s)",
            config.path, config.table_name, config.desired_batch_size,
            config.desired_max_batch_latency_seconds, config.ducklake_enabled,
        )
        return DuckDBSink(
            path=config.path,
            table_name=config.table_name,
            debug_logging=config.debug_logging,
            desired_batch_size=config.desired_batch_size,
            desired_max_batch_latency_seconds=config.desired_max_batch_latency_seconds,
            ducklake=config.ducklake if config.ducklake_enabled else None,
        )

    if sink_type is SinkType.http:
        config = settings.http
        if config is None:
            raise ValueError("HTTP sink selected but configuration is missing")
        logger.info(
            "Using HTTP sink: %s (timeout %ds, max retries %d)",
            config.api_url, config.timeout_seconds, config.max_retries,
        )
        return HttpSink(
            api_url=config.api_url,
            debug_logging=config.debug_logging,
            timeout_seconds=config.timeout_seconds,
            max_retries=config.max_retries,
            desired_batch_size=config.desired_batch_size,
            desired_max_batch_latency_seconds=config.desired_max_batch_latency_seconds,
        )

    raise ValueError(f"Unsupported sink type: {sink_type}")
