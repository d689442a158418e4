"""Size/latency batching of a blocking record stream."""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, Iterator, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_END = object()
_STOP = object()


@dataclass(frozen=True)
class _Failure:
    error: BaseException


class _DemandReader(Generic[T]):
    """Pulls one item from an iterator per request on a background thread.

    The iterator is only advanced when the consumer asks for the next item,
    so nothing is read while the previous batch is still being handled.
    """

    def __init__(self, source: Iterable[T]) -> None:
        self._iterator = iter(source)
        self._requests: "queue.Queue[object]" = queue.Queue()
        self._results: "queue.Queue[object]" = queue.Queue()
        self._pending = False
        self._thread = threading.Thread(
            target=self._run, name="telemetry-source-reader", daemon=True
        )
        self._thread.start()

    def request(self) -> None:
        if not self._pending:
            self._requests.put(None)
            self._pending = True

    def receive(self, timeout: Optional[float]) -> object:
        """Wait for the requested item. Raises ``queue.Empty`` on timeout."""
        item = self._results.get(timeout=timeout)
        self._pending = False
        return item

    def stop(self) -> None:
        self._requests.put(_STOP)

    def _run(self) -> None:
        while True:
            if self._requests.get() is _STOP:
                return
            try:
                item = next(self._iterator)
            except StopIteration:
                self._results.put(_END)
                return
            except BaseException as exc:  # handed to the consuming thread
                self._results.put(_Failure(exc))
                return
            self._results.put(item)


@dataclass
class Batcher:
    """
    Groups items into batches of at most ``max_size``.

    A batch is emitted when it is full or when ``max_latency`` seconds have
    passed since its first item was buffered, whichever happens first. The
    latency clock only runs while something is buffered. ``max_latency=None``
    disables the latency trigger.
    """
    max_size: int
    max_latency: Optional[float] = None
    clock: Callable[[], float] = time.monotonic

    _stats: dict = field(default_factory=dict, init=False)

    def __post_init__(self) -> None:
        if self.max_size < 1:
            raise ValueError("max_size must be at least 1")
        if self.max_latency is not None and self.max_latency < 0:
            raise ValueError("max_latency must not be negative")
        self._stats = {
            "batches": 0,
            "size_flushes": 0,
            "latency_flushes": 0,
            "final_flushes": 0,
        }

    def batches(self, source: Iterable[T]) -> Iterator[List[T]]:
        reader: _DemandReader[T] = _DemandReader(source)
        buffer: List[T] = []
        deadline: Optional[float] = None

        try:
            while True:
                reader.request()
                timeout = None
                if deadline is not None:
                    timeout = min(max(0.0, deadline - self.clock()), threading.TIMEOUT_MAX)
                try:
                    item = reader.receive(timeout)
                except queue.Empty:
                    # The read stays outstanding and is picked up next round.
                    if buffer:
                        yield self._emit(buffer, "latency_flushes")
                        buffer = []
                    deadline = None
                    continue

                if item is _END:
                    if buffer:
                        yield self._emit(buffer, "final_flushes")
                    return

                if isinstance(item, _Failure):
                    if buffer:
                        yield self._emit(buffer, "final_flushes")
                    raise item.error

                buffer.append(item)  # type: ignore[arg-type]
                if len(buffer) == 1 and self.max_latency is not None:
                    deadline = self.clock() + self.max_latency
                if len(buffer) >= self.max_size:
                    yield self._emit(buffer, "size_flushes")
                    buffer = []
                    deadline = None
        finally:
            reader.stop()

    def _emit(self, buffer: List[T], trigger: str) -> List[T]:
        self._stats["batches"] += 1
        self._stats[trigger] += 1
        logger.debug(
            "Emitting batch (%s)", trigger.replace("_flushes", ""),
            extra={"batch_size": len(buffer)},
        )
        return buffer

    @property
    def stats(self) -> dict:
        return dict(self._stats)
