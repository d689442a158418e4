from __future__ import annotations

import pytest

from settings import CatalogType, SinkType, get_settings


@pytest.fixture(autouse=True)
def _clear_caches():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults_without_environment(monkeypatch) -> None:
    for name in (
        "RUUVI_SINK_TYPE",
        "RUUVI_DUCKDB_PATH",
        "RUUVI_DUCKDB_TABLE_NAME",
        "RUUVI_DUCKDB_DUCKLAKE_ENABLED",
        "RUUVI_HTTP_API_URL",
        "RUUVI_HTTP_MAX_RETRIES",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = get_settings()

    assert settings.sink_type is SinkType.console
    assert settings.json_lines is not None
    assert settings.json_lines.path == "data/telemetry.jsonl"
    assert settings.duckdb is not None
    assert settings.duckdb.path == "data/telemetry.db"
    assert settings.duckdb.table_name == "telemetry"
    assert settings.duckdb.ducklake is None
    assert settings.http is not None
    assert settings.http.timeout_seconds == 30
    assert settings.http.max_retries == 3
    assert settings.http.desired_batch_size == 5
    assert settings.http.desired_max_batch_latency_seconds == 30
    assert settings.log_level == "INFO"


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("RUUVI_SINK_TYPE", " DuckDB ")
    monkeypatch.setenv("RUUVI_DUCKDB_PATH", str(tmp_path / "db.duckdb"))
    monkeypatch.setenv("RUUVI_DUCKDB_TABLE_NAME", "readings")
    monkeypatch.setenv("RUUVI_DUCKDB_DEBUG_LOGGING", "true")
    monkeypatch.setenv("RUUVI_DUCKDB_DESIRED_BATCH_SIZE", "250")
    monkeypatch.setenv("RUUVI_DUCKDB_DESIRED_MAX_BATCH_LATENCY_SECONDS", "12")
    monkeypatch.setenv("RUUVI_DUCKDB_DUCKLAKE_ENABLED", "yes")
    monkeypatch.setenv("RUUVI_DUCKDB_DUCKLAKE_CATALOG_TYPE", "postgres")
    monkeypatch.setenv("RUUVI_DUCKDB_DUCKLAKE_CATALOG_PATH", "dbname=lake")
    monkeypatch.setenv("RUUVI_HTTP_MAX_RETRIES", "0")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = get_settings()

    assert settings.sink_type is SinkType.duckdb
    assert settings.duckdb is not None
    assert settings.duckdb.path == str(tmp_path / "db.duckdb")
    assert settings.duckdb.table_name == "readings"
    assert settings.duckdb.debug_logging is True
    assert settings.duckdb.desired_batch_size == 250
    assert settings.duckdb.desired_max_batch_latency_seconds == 12
    assert settings.duckdb.ducklake_enabled is True
    assert settings.duckdb.ducklake is not None
    assert settings.duckdb.ducklake.catalog_type is CatalogType.postgres
    assert settings.duckdb.ducklake.catalog_path == "dbname=lake"
    assert settings.duckdb.ducklake.data_path == "data/ducklake_files/"
    assert settings.http is not None
    assert settings.http.max_retries == 0
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("value", ["", "   ", "abc", "-3", "0"])
def test_invalid_batch_size_falls_back_to_default(monkeypatch, value) -> None:
    monkeypatch.setenv("RUUVI_HTTP_DESIRED_BATCH_SIZE", value)

    assert get_settings().http.desired_batch_size == 5


def test_unknown_sink_type_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("RUUVI_SINK_TYPE", "kafka")

    with pytest.raises(ValueError, match="Invalid sink type: kafka"):
        get_settings()


def test_unknown_catalog_type_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("RUUVI_DUCKDB_DUCKLAKE_ENABLED", "true")
    monkeypatch.setenv("RUUVI_DUCKDB_DUCKLAKE_CATALOG_TYPE", "mysql")

    with pytest.raises(ValueError, match="Invalid catalog type: mysql"):
        get_settings()
