"""DuckDB sink with optional DuckLake lakehouse storage."""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

import duckdb

from models.errors import InvalidTableName, SinkError
from models.records import TelemetryRecord
from settings import CatalogType, DuckLakeSettings
from sinks.base import TelemetrySink

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"
LAKE_ALIAS = "lake"

_TABLE_NAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

COLUMNS: Tuple[str, ...] = (
    "temperature_millicelsius",
    "humidity",
    "pressure",
    "battery_potential",
    "tx_power",
    "movement_counter",
    "measurement_sequence_number",
    "measurement_ts_ms",
    "mac_address",
)

_CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS {table} (
        temperature_millicelsius INTEGER NOT NULL,
        humidity INTEGER NOT NULL,
        pressure INTEGER NOT NULL,
        battery_potential INTEGER NOT NULL,
        tx_power INTEGER NOT NULL,
        movement_counter INTEGER NOT NULL,
        measurement_sequence_number INTEGER NOT NULL,
        measurement_ts_ms BIGINT NOT NULL,
        mac_address VARCHAR NOT NULL
    )
"""

_CATALOG_EXTENSIONS = {
    CatalogType.duckdb: (),
    CatalogType.sqlite: ("sqlite",),
    CatalogType.postgres: ("postgres",),
}

_CATALOG_PREFIXES = {
    CatalogType.duckdb: "ducklake:",
    CatalogType.sqlite: "ducklake:sqlite:",
    CatalogType.postgres: "ducklake:postgres:",
}


def validate_table_name(name: str) -> str:
    """Return ``name`` if it is a plain SQL identifier, else raise ``InvalidTableName``.

    DuckDB cannot bind identifiers as parameters, so this check is what keeps
    the interpolated table name safe.
    """
    if not _TABLE_NAME_PATTERN.match(name):
        raise InvalidTableName(name)
    return name


def _quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def build_insert_statement(table: str, row_count: int) -> str:
    """Multi-row INSERT with one placeholder group per row."""
    placeholders = "(" + ", ".join("?" for _ in COLUMNS) + ")"
    values = ", ".join(placeholders for _ in range(row_count))
    return f"INSERT INTO {table} ({', '.join(COLUMNS)}) VALUES {values}"


def build_attach_statements(ducklake: DuckLakeSettings, alias: str = LAKE_ALIAS) -> List[str]:
    """SQL that loads DuckLake and attaches the configured catalog as ``alias``."""
    statements: List[str] = ["INSTALL ducklake", "LOAD ducklake"]
    for extension in _CATALOG_EXTENSIONS[ducklake.catalog_type]:
        statements.extend([f"INSTALL {extension}", f"LOAD {extension}"])
    uri = _CATALOG_PREFIXES[ducklake.catalog_type] + ducklake.catalog_path
    statements.append(
        f"ATTACH {_quote_literal(uri)} AS {alias} (DATA_PATH {_quote_literal(ducklake.data_path)})"
    )
    return statements


def record_to_row(record: TelemetryRecord) -> Tuple[object, ...]:
    return (
        record.temperature_millicelsius,
        record.humidity,
        record.pressure,
        record.battery_potential,
        record.tx_power,
        record.movement_counter,
        record.measurement_sequence_number,
        record.measurement_ts_ms,
        record.mac_display,
    )


class DuckDBSink(TelemetrySink):
    """
    Inserts each batch into a DuckDB table with a single parameterized statement.

    In direct mode the table lives in one database file (or ``:memory:``).
    With ``ducklake`` set, an in-memory DuckDB attaches a DuckLake catalog and
    the rows land as columnar files under the catalog's data path.
    """

    name = "duckdb"

    def __init__(
        self,
        path: str,
        table_name: str,
        debug_logging: bool = False,
        desired_batch_size: int = 1000,
        desired_max_batch_latency_seconds: Optional[float] = 5,
        ducklake: Optional[DuckLakeSettings] = None,
    ) -> None:
        self.path = path
        self.table_name = table_name
        self.debug_logging = debug_logging
        self.ducklake = ducklake
        self._desired_batch_size = desired_batch_size
        self._desired_max_batch_latency = desired_max_batch_latency_seconds
        self._initialized = False
        self._memory_connection: Optional[duckdb.DuckDBPyConnection] = None

    @property
    def desired_batch_size(self) -> int:
        return self._desired_batch_size

    @property
    def desired_max_batch_latency(self) -> Optional[float]:
        return self._desired_max_batch_latency

    @property
    def target(self) -> str:
        if self.ducklake is not None:
            return f"{self.ducklake.catalog_type.value}:{self.ducklake.catalog_path}"
        return self.path

    @property
    def table_ref(self) -> str:
        if self.ducklake is not None:
            return f"{LAKE_ALIAS}.{self.table_name}"
        return self.table_name

    def start(self) -> None:
        """Validate the table name and make sure the table exists."""
        if self._initialized:
            return
        validate_table_name(self.table_name)
        try:
            with self._connection() as conn:
                conn.execute(_CREATE_TABLE_SQL.format(table=self.table_ref))
        except (duckdb.Error, OSError) as exc:
            raise SinkError(
                f"Failed to initialize table {self.table_name} at {self.target}: {exc}",
                sink=self.name,
            ) from exc
        self._initialized = True
        logger.info(
            "DuckDB table %s ready", self.table_name,
            extra={"sink": self.name, "target": self.target},
        )

    def consume(self, batch: Sequence[TelemetryRecord]) -> int:
        self.start()
        if not batch:
            return 0

        rows = [record_to_row(record) for record in batch]
        if self.debug_logging:
            logger.debug(
                "Processing chunk of %d telemetry records for DuckDB (table: %s)",
                len(rows), self.table_name,
            )
        logger.info(
            "Inserting batch of %d records into DuckDB table %s", len(rows), self.table_name,
            extra={"sink": self.name, "target": self.target, "record_count": len(rows)},
        )

        statement = build_insert_statement(self.table_ref, len(rows))
        parameters = [value for row in rows for value in row]
        try:
            with self._connection() as conn:
                conn.execute(statement, parameters)
        except (duckdb.Error, OSError) as exc:
            logger.error(
                "Failed to insert batch of %d records: %s", len(rows), exc,
                extra={"sink": self.name, "target": self.target, "record_count": len(rows)},
            )
            raise SinkError(
                f"Failed to insert batch of {len(rows)} records into {self.table_name}: {exc}",
                sink=self.name,
            ) from exc
        return len(rows)

    def close(self) -> None:
        if self._memory_connection is not None:
            self._memory_connection.close()
            self._memory_connection = None

    @contextmanager
    def _connection(self) -> Iterator[duckdb.DuckDBPyConnection]:
        if self.ducklake is None and self.path == MEMORY_PATH:
            # A fresh :memory: connection is a fresh database; keep one for the sink's life.
            if self._memory_connection is None:
                self._memory_connection = duckdb.connect(MEMORY_PATH)
            yield self._memory_connection
            return

        conn = self._open()
        try:
            yield conn
        finally:
            conn.close()

    def _open(self) -> duckdb.DuckDBPyConnection:
        if self.ducklake is None:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            return duckdb.connect(self.path)

        if self.ducklake.catalog_type is not CatalogType.postgres:
            Path(self.ducklake.catalog_path).parent.mkdir(parents=True, exist_ok=True)
        Path(self.ducklake.data_path).mkdir(parents=True, exist_ok=True)
        conn = duckdb.connect(MEMORY_PATH)
        try:
            for statement in build_attach_statements(self.ducklake):
                conn.execute(statement)
        except BaseException:
            conn.close()
            raise
        return conn
