"""Bounded buffer of recent enriched records with best-effort persistence."""

from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from quakehub.core.models import EnrichedRecord
from quakehub.exceptions import PersistenceFailure

if TYPE_CHECKING:
    from quakehub.storage.base import SnapshotStore

log = structlog.get_logger()

DEFAULT_MAX_SIZE = 1000
DEFAULT_PERSIST_EVERY = 100


def _timestamp_key(value: Any) -> tuple[int, float | str]:
    """Sort key that compares numeric timestamps numerically, others as text."""
    try:
        return 0, float(value)
    except (TypeError, ValueError):
        return 1, str(value)


def _in_range(value: Any, start: Any, end: Any) -> bool:
    key = _timestamp_key(value)
    if start is not None:
        low = _timestamp_key(start)
        if key[0] != low[0] or key < low:
            return False
    if end is not None:
        high = _timestamp_key(end)
        if key[0] != high[0] or key > high:
            return False
    return True


class SnapshotCache:
    """In-memory FIFO of the last ``max_size`` records, mirrored to a store.

    The whole buffer is written on every ``persist_every``-th accepted sample
    and whenever a caller forces it (earthquakes). Store errors are logged
    and counted; the in-memory buffer stays authoritative.
    """

    def __init__(
        self,
        store: SnapshotStore,
        max_size: int = DEFAULT_MAX_SIZE,
        persist_every: int = DEFAULT_PERSIST_EVERY,
    ) -> None:
        self._store = store
        self._buffer: deque[EnrichedRecord] = deque(maxlen=max_size)
        self._persist_every = max(1, persist_every)
        self._accepted = 0
        self.writes = 0
        self.write_errors = 0

    def load(self) -> int:
        """Replace the buffer with the stored snapshot. Never raises."""
        try:
            raw = self._store.load()
            records = [EnrichedRecord.from_dict(item) for item in raw or []]
        except (PersistenceFailure, KeyError, TypeError, ValueError, AttributeError):
            log.error("snapshot_load_failed", exc_info=True)
            records = []
        self._buffer.clear()
        self._buffer.extend(records)
        if records:
            log.info("snapshot_loaded", records=len(self._buffer))
        return len(self._buffer)

    def append(self, record: EnrichedRecord, *, force: bool = False) -> bool:
        """Add a record; persist if due. Returns True when a write succeeded."""
        self._buffer.append(record)
        self._accepted += 1
        if force or self._accepted % self._persist_every == 0:
            return self.persist()
        return False

    def persist(self) -> bool:
        try:
            self._store.save(self.to_wire())
        except PersistenceFailure:
            self.write_errors += 1
            log.error("snapshot_write_failed", records=len(self._buffer), exc_info=True)
            return False
        self.writes += 1
        return True

    def to_wire(self) -> list[dict]:
        return [record.to_dict() for record in self._buffer]

    def records(self) -> list[EnrichedRecord]:
        return list(self._buffer)

    def query(self, limit: int = 100, start: Any = None, end: Any = None) -> tuple[list[EnrichedRecord], int]:
        """Records whose client timestamp is within [start, end], newest ``limit``.

        Returns ``(records, total_matching)``.
        """
        matching = [r for r in self._buffer if _in_range(r.timestamp, start, end)]
        limited = matching[-limit:] if limit > 0 else []
        return limited, len(matching)

    def clear(self, timestamp_ms: int) -> Path:
        """Back up the current contents, empty the buffer, delete the snapshot.

        Raises ``PersistenceFailure`` if the backup cannot be written, in which
        case nothing is cleared.
        """
        backup_path = self._store.backup(self.to_wire(), timestamp_ms)
        self._buffer.clear()
        self._accepted = 0
        self._store.delete()
        log.info("snapshot_cleared", backup=str(backup_path))
        return backup_path

    def __len__(self) -> int:
        return len(self._buffer)
