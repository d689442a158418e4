"""Base sink interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from models.records import TelemetryRecord


class TelemetrySink(ABC):
    """
    Abstract base class for telemetry sinks.

    Sinks receive batches of records and deliver them to a destination
    (stdout, file, database, HTTP API). The forwarder groups records using
    ``desired_batch_size`` and ``desired_max_batch_latency`` before calling
    ``consume`` once per batch, never concurrently.
    """

    name: str = "sink"

    @property
    @abstractmethod
    def desired_batch_size(self) -> int:
        ...

    @property
    @abstractmethod
    def desired_max_batch_latency(self) -> Optional[float]:
        """Seconds a partial batch may wait, or None to wait for a full one."""
        ...

    @abstractmethod
    def consume(self, batch: Sequence[TelemetryRecord]) -> int:
        """Deliver one batch and return how many of its records were delivered.

        Raises ``SinkError`` when delivery fails and the run must stop. Sinks
        that drop records instead (the HTTP sink) report the smaller count.
        """
        ...

    @property
    def target(self) -> str:
        """Human readable destination used in log context."""
        return self.name

    def start(self) -> None:
        """Acquire or validate startup state (called before the first batch)."""
        pass

    def close(self) -> None:
        """Release any resource held between batches."""
        pass

    def __enter__(self) -> "TelemetrySink":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
