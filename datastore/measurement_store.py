"""Receiver-side storage of measurements posted to the telemetry API."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from app.schemas import Measurement, TelemetryData, TelemetryType

logger = logging.getLogger(__name__)


class MeasurementStore:
    """In-memory store of received measurements, keyed by telemetry type."""

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._items: Dict[TelemetryType, List[Measurement]] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def add(self, entries: List[TelemetryData]) -> int:
        """Store every data point in ``entries`` and return how many were stored."""
        stored = 0
        with self._lock:
            for entry in entries:
                bucket = self._items.setdefault(entry.telemetry_type, [])
                bucket.extend(point.model_copy() for point in entry.data)
                stored += len(entry.data)
            self._persist()
        return stored

    def get(self, telemetry_type: TelemetryType) -> List[Measurement]:
        with self._lock:
            return [point.model_copy() for point in self._items.get(telemetry_type, [])]

    def count(self) -> int:
        with self._lock:
            return sum(len(points) for points in self._items.values())

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._persist()

    def _persist(self) -> None:
        """Atomically rewrite the JSON snapshot."""
        if self.persistence_path is None:
            return
        snapshot = {
            telemetry_type.value: [point.model_dump(mode="json") for point in points]
            for telemetry_type, points in self._items.items()
        }
        staging = self.persistence_path.with_suffix(self.persistence_path.suffix + ".tmp")
        staging.write_text(json.dumps(snapshot, indent=2, sort_keys=True))
        staging.replace(self.persistence_path)

    def _load_from_disk(self) -> None:
        path = self.persistence_path
        if path is None or not path.is_file():
            return
        try:
            snapshot = json.loads(path.read_text() or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable measurement snapshot %s: %s", path, exc)
            return

        for type_name, points in snapshot.items():
            try:
                telemetry_type = TelemetryType(type_name)
            except ValueError:
                logger.warning("Ignoring unknown telemetry type %r in %s", type_name, path)
                continue
            self._items[telemetry_type] = [Measurement.model_validate(point) for point in points]


@lru_cache
def build_default_store(path: Optional[str] = None) -> MeasurementStore:
    persistence = Path(path) if path else None
    return MeasurementStore(persistence_path=persistence)
