"""HTTP sink posting measurements to the telemetry API."""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from app.schemas import Measurement, TelemetryData, TelemetryPayload, TelemetryType
from models.errors import InvalidMacAddress, ServerError, SinkError
from models.records import TelemetryRecord
from services.retry import RetryPolicy
from sinks.base import TelemetrySink

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (ServerError, httpx.TransportError)


def transform_record(record: TelemetryRecord) -> List[TelemetryData]:
    """Split one record into the seven measurement types the API expects.

    Raises ``InvalidMacAddress`` if the record's MAC is not six bytes long.
    """
    mac_address = record.mac_display
    timestamp = record.measurement_ts_ms
    values = (
        (TelemetryType.temperature, record.temperature_millicelsius / 1000.0),
        (TelemetryType.humidity, record.humidity / 10000.0),
        (TelemetryType.pressure, float(record.pressure)),
        (TelemetryType.battery, record.battery_potential / 1000.0),
        (TelemetryType.tx_power, float(record.tx_power)),
        (TelemetryType.movement_counter, float(record.movement_counter)),
        (TelemetryType.measurement_sequence_number, float(record.measurement_sequence_number)),
    )
    return [
        TelemetryData(
            telemetry_type=telemetry_type,
            data=[Measurement(mac_address=mac_address, timestamp=timestamp, value=value)],
        )
        for telemetry_type, value in values
    ]


def group_by_type(entries: Sequence[TelemetryData]) -> TelemetryPayload:
    """Merge entries into one per telemetry type, keeping data point order."""
    grouped: Dict[TelemetryType, List[Measurement]] = {}
    for entry in entries:
        grouped.setdefault(entry.telemetry_type, []).extend(entry.data)
    return TelemetryPayload(
        [
            TelemetryData(telemetry_type=telemetry_type, data=grouped[telemetry_type])
            for telemetry_type in TelemetryType
            if telemetry_type in grouped
        ]
    )


class HttpSink(TelemetrySink):
    """
    POSTs each batch to ``{api_url}/telemetry`` as measurements grouped by type.

    Server errors, timeouts and connection failures are retried with
    exponential backoff. Once retries are exhausted the failure is logged and
    the batch is dropped so that ingestion keeps going while the API is down.
    Client errors (4xx) are logged and never retried.
    """

    name = "http"

    def __init__(
        self,
        api_url: str,
        debug_logging: bool = False,
        timeout_seconds: float = 30,
        max_retries: int = 3,
        desired_batch_size: int = 5,
        desired_max_batch_latency_seconds: Optional[float] = 30,
        client: Optional[httpx.Client] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.debug_logging = debug_logging
        self.timeout_seconds = timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=max_retries, initial_backoff=1.0, retry_on=RETRYABLE_ERRORS
        )
        self._desired_batch_size = desired_batch_size
        self._desired_max_batch_latency = desired_max_batch_latency_seconds
        self._client = client
        self._owns_client = client is None
        self.clock = clock

    @property
    def desired_batch_size(self) -> int:
        return self._desired_batch_size

    @property
    def desired_max_batch_latency(self) -> Optional[float]:
        return self._desired_max_batch_latency

    @property
    def url(self) -> str:
        return f"{self.api_url}/telemetry"

    @property
    def target(self) -> str:
        return self.url

    def start(self) -> None:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout_seconds)
            self._owns_client = True

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def consume(self, batch: Sequence[TelemetryRecord]) -> int:
        """POST the batch and return the number of records the API accepted.

        Returns 0 when nothing was accepted: no valid records, a 4xx or
        unexpected status, or retries exhausted.
        """
        if not batch:
            return 0
        self.start()

        payload, record_count = self.build_payload(batch)
        if record_count == 0:
            logger.warning(
                "No valid records left in batch, nothing sent",
                extra={"sink": self.name, "target": self.url, "batch_size": len(batch)},
            )
            return 0

        body = payload.model_dump_json()
        if self.debug_logging:
            logger.debug(
                "Sending batch of %d telemetries to HTTP API (%s)", record_count, self.api_url
            )
            logger.debug("Request payload (%d telemetries): %s", record_count, body)

        try:
            delivered = self.retry_policy.run(
                lambda: self._send(body, record_count),
                description=f"POST {self.url}",
            )
        except (SinkError, httpx.HTTPError) as exc:
            logger.error(
                "Failed to send batch: %s", exc,
                extra={"sink": self.name, "target": self.url, "record_count": record_count},
            )
            return 0
        return record_count if delivered else 0

    def build_payload(self, batch: Sequence[TelemetryRecord]) -> Tuple[TelemetryPayload, int]:
        """Transform the batch, skipping records whose MAC address is invalid."""
        entries: List[TelemetryData] = []
        record_count = 0
        for record in batch:
            try:
                entries.extend(transform_record(record))
            except InvalidMacAddress as exc:
                logger.warning(
                    "Skipping record: %s", exc,
                    extra={"sink": self.name, "reason": "invalid mac address"},
                )
                continue
            record_count += 1
        return group_by_type(entries), record_count


    def _send(self, body: str, record_count: int) -> bool:
        """One POST attempt. Returns True on 201, raises ``ServerError`` on 5xx.

        httpx applies ``timeout_seconds`` per phase (connect, write, each read),
        so the response is also read against a deadline of ``timeout_seconds``
        from the start of the attempt. Past the deadline the attempt fails with
        ``httpx.ReadTimeout`` at the next chunk, which bounds a trickling
        response to one extra read timeout.
        """
        assert self._client is not None
        deadline = self.clock() + self.timeout_seconds
        with self._client.stream(
            "POST",
            self.url,
            content=body.encode("utf-8"),
            headers={"Content-Type": "application/json"},
        ) as response:
            response_text = self._read_text(response, deadline)
        status_code = response.status_code
        context = {
            "sink": self.name,
            "target": self.url,
            "record_count": record_count,
            "status_code": status_code,
        }

        if status_code == 201:
            logger.info(
                "Batch of %d telemetries sent successfully to %s", record_count, self.url,
                extra=context,
            )
            return True
        if 400 <= status_code < 500:
            logger.warning(
                "Client error sending batch to %s: %d %s. Response body: %s",
                self.url, status_code, response.reason_phrase, response_text,
                extra=context,
            )
            return False
        if 500 <= status_code < 600:
            raise ServerError(status_code, response.reason_phrase, sink=self.name)
        logger.warning(
            "Unexpected status sending batch to %s: %d %s. Response body: %s",
            self.url, status_code, response.reason_phrase, response_text,
            extra=context,
        )
        return False

    def _read_text(self, response: httpx.Response, deadline: float) -> str:
        chunks: List[bytes] = []
        for chunk in response.iter_bytes():
            if self.clock() > deadline:
                raise httpx.ReadTimeout(
                    f"Response from {self.url} not complete within {self.timeout_seconds}s",
                    request=response.request,
                )
            chunks.append(chunk)
        return b"".join(chunks).decode(response.encoding or "utf-8", errors="replace")
