"""Console sink for development/debugging."""

from __future__ import annotations

import sys
from typing import Optional, Sequence, TextIO

from models.errors import SinkError
from models.records import TelemetryRecord, serialize_record
from sinks.base import TelemetrySink


class ConsoleSink(TelemetrySink):
    """Writes each record as one JSON line to stdout (or the given stream)."""

    name = "console"

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream

    @property
    def desired_batch_size(self) -> int:
        return 1

    @property
    def desired_max_batch_latency(self) -> Optional[float]:
        return None

    @property
    def target(self) -> str:
        return "stdout" if self._stream is None else getattr(self._stream, "name", "stream")

    def consume(self, batch: Sequence[TelemetryRecord]) -> int:
        # Resolved per call so redirected stdout (e.g. under test runners) is honoured.
        out = self._stream if self._stream is not None else sys.stdout
        try:
            for record in batch:
                out.write(serialize_record(record) + "\n")
            out.flush()
        except (OSError, ValueError) as exc:
            raise SinkError(f"Failed to write to {self.target}: {exc}", sink=self.name) from exc
        return len(batch)
