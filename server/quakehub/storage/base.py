"""Storage interface (port) for the snapshot cache."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol


class SnapshotStore(Protocol):
    """Port: whole-file, best-effort persistence of wire-form records.

    Implementations raise ``PersistenceFailure`` on any I/O or decode error.
    """

    def load(self) -> list[dict] | None: ...

    def save(self, records: list[dict]) -> None: ...

    def backup(self, records: list[dict], timestamp_ms: int) -> Path: ...

    def delete(self) -> None: ...
