"""JSON Lines file sink."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from models.errors import SinkError
from models.records import TelemetryRecord, serialize_record
from sinks.base import TelemetrySink

logger = logging.getLogger(__name__)


class JsonLinesSink(TelemetrySink):
    """
    Appends each record as a single JSON line to a file.

    The file is opened and closed for every record, so no handle is held
    between batches.
    Existing content is never truncated.
    """

    name = "jsonlines"

    def __init__(self, path: str | Path, debug_logging: bool = False, encoding: str = "utf-8") -> None:
        self.path = Path(path)
        self.debug_logging = debug_logging
        self.encoding = encoding

    @property
    def desired_batch_size(self) -> int:
        return 1

    @property
    def desired_max_batch_latency(self) -> Optional[float]:
        return None

    @property
    def target(self) -> str:
        return str(self.path)

    def consume(self, batch: Sequence[TelemetryRecord]) -> int:
        for record in batch:
            line = serialize_record(record)
            if self.debug_logging:
                logger.debug("Writing telemetry to %s: %s", self.path, line)
            self._append_line(line)
        return len(batch)

    def _append_line(self, line: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding=self.encoding) as handle:
                handle.write(line + "\n")
        except OSError as exc:
            raise SinkError(f"Failed to append to {self.path}: {exc}", sink=self.name) from exc
