"""Exponential backoff retry policy."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retries an operation on selected exceptions with exponential backoff.

    The first retry waits ``initial_backoff`` seconds and every following one
    waits ``multiplier`` times longer. At most ``max_retries`` retries are made,
    so the operation runs up to ``max_retries + 1`` times.
    """
    max_retries: int = 3
    initial_backoff: float = 1.0
    multiplier: float = 2.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def backoff(self, retry_number: int) -> float:
        """Delay before the ``retry_number``-th retry (1-based)."""
        return self.initial_backoff * (self.multiplier ** (retry_number - 1))

    def run(self, operation: Callable[[], T], description: str = "operation") -> T:
        attempt = 1
        while True:
            try:
                return operation()
            except self.retry_on as exc:
                if attempt > self.max_retries:
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    "%s failed (%s), retrying in %.1fs", description, exc, delay,
                    extra={"attempt": attempt},
                )
                self.sleep(delay)
                attempt += 1
