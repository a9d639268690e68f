"""File-based snapshot storage.

The snapshot is a single JSON array overwritten on every save. It is a cache,
not a log: a crash between saves loses whatever arrived since the last one.

Directory structure:
    cache_dir/sensor-data-cache.json
    cache_dir/sensor-data-cache-backup-<epoch ms>.json
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog

from quakehub.exceptions import PersistenceFailure

log = structlog.get_logger()

DEFAULT_FILE_NAME = "sensor-data-cache.json"


class FileSnapshotStore:
    """SnapshotStore backed by one JSON file on disk."""

    def __init__(self, cache_dir: str | Path, file_name: str = DEFAULT_FILE_NAME) -> None:
        self._cache_dir = Path(cache_dir)
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        self._path = self._cache_dir / file_name

    @property
    def path(self) -> Path:
        return self._path

    def _backup_path(self, timestamp_ms: int) -> Path:
        return self._cache_dir / f"{self._path.stem}-backup-{timestamp_ms}{self._path.suffix}"

    def _write(self, path: Path, records: list[dict]) -> None:
        try:
            payload = json.dumps(records, indent=2, allow_nan=False)
            path.write_text(payload, encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceFailure(f"cannot write {path}: {exc}") from exc

    def load(self) -> list[dict] | None:
        """Return the stored records, or ``None`` when no snapshot exists."""
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PersistenceFailure(f"cannot read {self._path}: {exc}") from exc
        if not isinstance(data, list):
            raise PersistenceFailure(f"{self._path} does not contain a JSON array")
        return data

    def save(self, records: list[dict]) -> None:
        self._write(self._path, records)
        log.debug("snapshot_written", path=str(self._path), records=len(records))

    def backup(self, records: list[dict], timestamp_ms: int) -> Path:
        path = self._backup_path(timestamp_ms)
        self._write(path, records)
        return path

    def delete(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceFailure(f"cannot delete {self._path}: {exc}") from exc
