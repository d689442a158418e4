from __future__ import annotations

import json
from typing import Callable, List

import httpx
import pytest

from app.schemas import TelemetryType
from models.errors import InvalidMacAddress
from models.records import TelemetryRecord, parse_record
from services.retry import RetryPolicy
from sinks.http_api import RETRYABLE_ERRORS, HttpSink, group_by_type, transform_record

API_URL = "http://telemetry.test/api/"

SAMPLE_LINE = (
    '{"battery_potential":2335,"humidity":653675,"mac_address":[254,38,136,122,102,102],'
    '"measurement_sequence_number":53300,"movement_counter":2,"pressure":100755,'
    '"temperature_millicelsius":-29020,"tx_power":4,"measurement_ts_ms":1693460525699}'
)


def _second_record(**overrides) -> TelemetryRecord:
    values = dict(
        temperature_millicelsius=22005,
        humidity=570925,
        pressure=100621,
        battery_potential=1941,
        tx_power=4,
        movement_counter=79,
        measurement_sequence_number=559,
        measurement_ts_ms=1693460275133,
        mac_address=(213, 18, 52, 102, 20, 20),
    )
    values.update(overrides)
    return TelemetryRecord(**values)


class Recorder:
    """Mock transport handler replaying scripted responses."""

    def __init__(self, *responses: int | Exception) -> None:
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, json={"detail": "scripted"})


def _sink(
    handler: Callable[[httpx.Request], httpx.Response],
    sleeps: List[float],
    max_retries: int = 3,
    **kwargs,
) -> HttpSink:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    policy = RetryPolicy(max_retries=max_retries, retry_on=RETRYABLE_ERRORS, sleep=sleeps.append)
    return HttpSink(api_url=API_URL, client=client, retry_policy=policy, **kwargs)


def test_transform_record_produces_seven_measurements() -> None:
    entries = transform_record(parse_record(SAMPLE_LINE))

    assert [entry.telemetry_type for entry in entries] == list(TelemetryType)
    values = {entry.telemetry_type.value: entry.data[0].value for entry in entries}
    assert values == {
        "temperature": -29.02,
        "humidity": 65.3675,
        "pressure": 100755.0,
        "battery": 2.335,
        "tx_power": 4.0,
        "movement_counter": 2.0,
        "measurement_sequence_number": 53300.0,
    }
    temperature = entries[0].data[0]
    assert temperature.mac_address == "FE:26:88:7A:66:66"
    assert temperature.timestamp == 1693460525699


@pytest.mark.parametrize("mac", [(1, 2, 3, 4, 5), (1, 2, 3, 4, 5, 6, 7), ()])
def test_transform_record_rejects_bad_mac_length(mac) -> None:
    with pytest.raises(InvalidMacAddress, match=f"Invalid MAC address length: {len(mac)}, expected 6"):
        transform_record(_second_record(mac_address=mac))


def test_group_by_type_merges_records_in_order() -> None:
    first = parse_record(SAMPLE_LINE)
    second = _second_record()

    payload = group_by_type(transform_record(first) + transform_record(second))

    assert len(payload.root) == 7
    for entry in payload.root:
        assert [point.mac_address for point in entry.data] == [
            "FE:26:88:7A:66:66",
            "D5:12:34:66:14:14",
        ]


def test_consume_posts_once_per_batch() -> None:
    recorder = Recorder(201)
    sleeps: List[float] = []
    sink = _sink(recorder, sleeps)

    delivered = sink.consume([parse_record(SAMPLE_LINE), _second_record()])

    assert delivered == 2
    assert len(recorder.requests) == 1
    request = recorder.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "http://telemetry.test/api/telemetry"
    assert request.headers["content-type"] == "application/json"
    body = json.loads(request.content)
    assert [entry["telemetry_type"] for entry in body] == [item.value for item in TelemetryType]
    assert all(len(entry["data"]) == 2 for entry in body)
    assert body[0]["data"][0] == {
        "mac_address": "FE:26:88:7A:66:66",
        "timestamp": 1693460525699,
        "value": -29.02,
    }
    assert sleeps == []


def test_client_errors_are_logged_and_not_retried(caplog) -> None:
    recorder = Recorder(422)
    sleeps: List[float] = []
    sink = _sink(recorder, sleeps)

    with caplog.at_level("WARNING", logger="sinks.http_api"):
        delivered = sink.consume([_second_record()])

    assert delivered == 0
    assert len(recorder.requests) == 1
    assert sleeps == []
    assert any("Client error" in message for message in caplog.messages)


def test_server_errors_retry_with_exponential_backoff_then_give_up(caplog) -> None:
    recorder = Recorder(503)
    sleeps: List[float] = []
    sink = _sink(recorder, sleeps, max_retries=3)

    with caplog.at_level("ERROR", logger="sinks.http_api"):
        delivered = sink.consume([_second_record()])

    assert delivered == 0
    assert len(recorder.requests) == 4
    assert sleeps == [1.0, 2.0, 4.0]
    assert any("Failed to send batch" in message for message in caplog.messages)
    failure = next(record for record in caplog.records if "Failed to send batch" in record.getMessage())
    assert failure.record_count == 1


def test_server_error_then_success_stops_retrying() -> None:
    recorder = Recorder(500, 201)
    sleeps: List[float] = []
    sink = _sink(recorder, sleeps)

    sink.consume([_second_record()])

    assert len(recorder.requests) == 2
    assert sleeps == [1.0]


def test_timeouts_are_retried() -> None:
    recorder = Recorder(httpx.ReadTimeout("too slow"), 201)
    sleeps: List[float] = []
    sink = _sink(recorder, sleeps)

    sink.consume([_second_record()])

    assert len(recorder.requests) == 2
    assert sleeps == [1.0]


def test_connection_failures_never_escape_consume() -> None:
    recorder = Recorder(httpx.ConnectError("refused"))
    sleeps: List[float] = []
    sink = _sink(recorder, sleeps, max_retries=2)

    sink.consume([_second_record()])

    assert len(recorder.requests) == 3
    assert sleeps == [1.0, 2.0]


def test_unexpected_status_is_logged_and_swallowed(caplog) -> None:
    recorder = Recorder(200)
    sleeps: List[float] = []
    sink = _sink(recorder, sleeps)

    with caplog.at_level("WARNING", logger="sinks.http_api"):
        sink.consume([_second_record()])

    assert len(recorder.requests) == 1
    assert any("Unexpected status" in message for message in caplog.messages)


def test_records_with_invalid_mac_are_skipped_before_sending() -> None:
    recorder = Recorder(201)
    sink = _sink(recorder, [])

    delivered = sink.consume([_second_record(mac_address=(1, 2, 3)), parse_record(SAMPLE_LINE)])

    assert delivered == 1
    assert len(recorder.requests) == 1
    body = json.loads(recorder.requests[0].content)
    assert all(len(entry["data"]) == 1 for entry in body)
    assert body[0]["data"][0]["mac_address"] == "FE:26:88:7A:66:66"


def test_batch_without_valid_records_sends_nothing() -> None:
    recorder = Recorder(201)
    sink = _sink(recorder, [])

    assert sink.consume([_second_record(mac_address=(1,))]) == 0
    assert sink.consume([]) == 0

    assert recorder.requests == []


def test_owned_client_is_created_on_start_and_closed() -> None:
    sink = HttpSink(api_url=API_URL, timeout_seconds=2)

    with sink:
        client = sink._client  # type: ignore[attr-defined]
        assert isinstance(client, httpx.Client)
        assert client.timeout.read == 2

    assert client.is_closed
    assert sink._client is None  # type: ignore[attr-defined]


def test_injected_client_is_left_open() -> None:
    client = httpx.Client(transport=httpx.MockTransport(Recorder(201)))
    sink = HttpSink(api_url=API_URL, client=client)

    sink.close()

    assert not client.is_closed
    client.close()


def test_default_retry_policy_uses_configured_retries() -> None:
    sink = HttpSink(api_url=API_URL, max_retries=5)

    assert sink.retry_policy.max_retries == 5
    assert sink.retry_policy.initial_backoff == 1.0
    assert [sink.retry_policy.backoff(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]


def test_slow_response_body_is_cut_off_at_the_attempt_deadline(caplog) -> None:
    recorder = Recorder(201)
    sleeps: List[float] = []
    ticks = iter(range(0, 1000, 40))
    sink = _sink(recorder, sleeps, max_retries=1, timeout_seconds=30, clock=lambda: next(ticks))

    with caplog.at_level("ERROR", logger="sinks.http_api"):
        delivered = sink.consume([_second_record()])

    assert delivered == 0
    assert len(recorder.requests) == 2
    assert sleeps == [1.0]
    assert any("not complete within 30s" in message for message in caplog.messages)


def test_response_within_deadline_is_accepted() -> None:
    recorder = Recorder(201)
    sink = _sink(recorder, [], timeout_seconds=30, clock=lambda: 0.0)

    assert sink.consume([_second_record()]) == 1
