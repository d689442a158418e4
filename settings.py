from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Optional


_SINK_TYPE_ENV = "RUUVI_SINK_TYPE"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_JSONLINES_PATH_ENV = "RUUVI_JSONLINES_PATH"
_JSONLINES_DEBUG_ENV = "RUUVI_JSONLINES_DEBUG_LOGGING"

_DUCKDB_PATH_ENV = "RUUVI_DUCKDB_PATH"
_DUCKDB_TABLE_ENV = "RUUVI_DUCKDB_TABLE_NAME"
_DUCKDB_DEBUG_ENV = "RUUVI_DUCKDB_DEBUG_LOGGING"
_DUCKDB_BATCH_SIZE_ENV = "RUUVI_DUCKDB_DESIRED_BATCH_SIZE"
_DUCKDB_BATCH_LATENCY_ENV = "RUUVI_DUCKDB_DESIRED_MAX_BATCH_LATENCY_SECONDS"
_DUCKLAKE_ENABLED_ENV = "RUUVI_DUCKDB_DUCKLAKE_ENABLED"
_DUCKLAKE_CATALOG_TYPE_ENV = "RUUVI_DUCKDB_DUCKLAKE_CATALOG_TYPE"
_DUCKLAKE_CATALOG_PATH_ENV = "RUUVI_DUCKDB_DUCKLAKE_CATALOG_PATH"
_DUCKLAKE_DATA_PATH_ENV = "RUUVI_DUCKDB_DUCKLAKE_DATA_PATH"

_HTTP_API_URL_ENV = "RUUVI_HTTP_API_URL"
_HTTP_DEBUG_ENV = "RUUVI_HTTP_DEBUG_LOGGING"
_HTTP_TIMEOUT_ENV = "RUUVI_HTTP_TIMEOUT_SECONDS"
_HTTP_MAX_RETRIES_ENV = "RUUVI_HTTP_MAX_RETRIES"
_HTTP_BATCH_SIZE_ENV = "RUUVI_HTTP_DESIRED_BATCH_SIZE"
_HTTP_BATCH_LATENCY_ENV = "RUUVI_HTTP_DESIRED_MAX_BATCH_LATENCY_SECONDS"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class SinkType(str, Enum):
    """Output destinations the forwarder can write to."""

    console = "console"
    jsonlines = "jsonlines"
    duckdb = "duckdb"
    http = "http"


class CatalogType(str, Enum):
    """Metadata stores DuckLake can keep its catalog in."""

    duckdb = "duckdb"
    sqlite = "sqlite"
    postgres = "postgres"


@dataclass(frozen=True)
class JsonLinesSettings:
    path: str
    debug_logging: bool = False


@dataclass(frozen=True)
class DuckLakeSettings:
    catalog_type: CatalogType
    catalog_path: str
    data_path: str


@dataclass(frozen=True)
class DuckDBSettings:
    path: str
    table_name: str
    debug_logging: bool = False
    desired_batch_size: int = 1000
    desired_max_batch_latency_seconds: int = 5
    ducklake_enabled: bool = False
    ducklake: Optional[DuckLakeSettings] = None


@dataclass(frozen=True)
class HttpSettings:
    api_url: str
    debug_logging: bool = False
    timeout_seconds: int = 30
    max_retries: int = 3
    desired_batch_size: int = 5
    desired_max_batch_latency_seconds: int = 30


@dataclass(frozen=True)
class Settings:
    sink_type: SinkType
    json_lines: Optional[JsonLinesSettings]
    duckdb: Optional[DuckDBSettings]
    http: Optional[HttpSettings]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUE_VALUES:
        return True
    if candidate in _FALSE_VALUES:
        return False
    return default


def _read_int_env(name: str, default: int, minimum: int = 1) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def parse_sink_type(value: str) -> SinkType:
    try:
        return SinkType(value.strip().lower())
    except ValueError:
        raise ValueError(
            f"Invalid sink type: {value}. Must be 'console', 'jsonlines', 'duckdb', or 'http'"
        ) from None


def parse_catalog_type(value: str) -> CatalogType:
    try:
        return CatalogType(value.strip().lower())
    except ValueError:
        raise ValueError(
            f"Invalid catalog type: {value}. Must be 'duckdb', 'sqlite', or 'postgres'"
        ) from None


def _read_ducklake() -> DuckLakeSettings:
    return DuckLakeSettings(
        catalog_type=parse_catalog_type(_read_str_env(_DUCKLAKE_CATALOG_TYPE_ENV, "sqlite")),
        catalog_path=_read_str_env(_DUCKLAKE_CATALOG_PATH_ENV, "data/catalog.sqlite"),
        data_path=_read_str_env(_DUCKLAKE_DATA_PATH_ENV, "data/ducklake_files/"),
    )


def _read_duckdb() -> DuckDBSettings:
    ducklake_enabled = _read_bool_env(_DUCKLAKE_ENABLED_ENV, False)
    return DuckDBSettings(
        path=_read_str_env(_DUCKDB_PATH_ENV, "data/telemetry.db"),
        table_name=_read_str_env(_DUCKDB_TABLE_ENV, "telemetry"),
        debug_logging=_read_bool_env(_DUCKDB_DEBUG_ENV, False),
        desired_batch_size=_read_int_env(_DUCKDB_BATCH_SIZE_ENV, 1000),
        desired_max_batch_latency_seconds=_read_int_env(_DUCKDB_BATCH_LATENCY_ENV, 5),
        ducklake_enabled=ducklake_enabled,
        ducklake=_read_ducklake() if ducklake_enabled else None,
    )


def _read_http() -> HttpSettings:
    return HttpSettings(
        api_url=_read_str_env(_HTTP_API_URL_ENV, "http://localhost:8081"),
        debug_logging=_read_bool_env(_HTTP_DEBUG_ENV, False),
        timeout_seconds=_read_int_env(_HTTP_TIMEOUT_ENV, 30),
        max_retries=_read_int_env(_HTTP_MAX_RETRIES_ENV, 3, minimum=0),
        desired_batch_size=_read_int_env(_HTTP_BATCH_SIZE_ENV, 5),
        desired_max_batch_latency_seconds=_read_int_env(_HTTP_BATCH_LATENCY_ENV, 30),
    )


@lru_cache
def get_settings() -> Settings:
    return Settings(
        sink_type=parse_sink_type(_read_str_env(_SINK_TYPE_ENV, SinkType.console.value)),
        json_lines=JsonLinesSettings(
            path=_read_str_env(_JSONLINES_PATH_ENV, "data/telemetry.jsonl"),
            debug_logging=_read_bool_env(_JSONLINES_DEBUG_ENV, False),
        ),
        duckdb=_read_duckdb(),
        http=_read_http(),
        log_level=_read_log_level("INFO"),
    )
