"""Tests for the snapshot cache and its file store."""

from __future__ import annotations

import json
import random

import pytest

from quakehub.core.models import EnrichedRecord
from quakehub.core.snapshot import SnapshotCache
from quakehub.exceptions import PersistenceFailure
from quakehub.scoring.seismic import SeismicScorer

_SCORER = SeismicScorer()


def _record(n: int, ax: float = 0.5, device_id: str = "D1", timestamp=None) -> EnrichedRecord:
    metrics = _SCORER.enrich(ax, 0.4, 0.45)
    assessment = _SCORER.assess_alert(metrics.magnitude, metrics.intensity)
    return EnrichedRecord(
        device_id=device_id,
        timestamp=n if timestamp is None else timestamp,
        server_timestamp="2024-01-01T00:00:00.000Z",
        ax=ax, ay=0.4, az=0.45, gx=0.0, gy=0.0, gz=0.0,
        magnitude=metrics.magnitude,
        intensity=metrics.intensity,
        jma_intensity=metrics.jma_intensity,
        pga=metrics.pga,
        pga_corrected=metrics.pga_corrected,
        earthquake_type=_SCORER.classify(metrics.magnitude),
        alert_level=assessment.level,
        alert_message=assessment.message,
        alert_color=assessment.color,
        energy=_SCORER.energy(metrics.magnitude),
        impact_radius=_SCORER.impact_radius(metrics.magnitude),
        is_earthquake=_SCORER.is_earthquake(metrics.magnitude),
        location="Lab",
    )


class BrokenStore:
    """Store whose writes always fail."""

    def __init__(self) -> None:
        self.attempts = 0

    def load(self):
        raise PersistenceFailure("disk on fire")

    def save(self, records):
        self.attempts += 1
        raise PersistenceFailure("disk on fire")

    def backup(self, records, timestamp_ms):
        raise PersistenceFailure("disk on fire")

    def delete(self):
        raise PersistenceFailure("disk on fire")


def test_buffer_bounded_randomized(store):
    rng = random.Random(99)
    cache = SnapshotCache(store, max_size=1000, persist_every=10_000)
    total = 0
    for _ in range(40):
        for _ in range(rng.randint(0, 80)):
            cache.append(_record(total))
            total += 1
        assert len(cache) <= 1000
    assert len(cache) == min(total, 1000)
    assert cache.records()[-1].timestamp == total - 1


def test_nothing_persisted_before_hundredth_sample(store):
    cache = SnapshotCache(store)
    for i in range(99):
        assert cache.append(_record(i)) is False
    assert not store.path.exists()


def test_persisted_after_exactly_hundred_samples(store):
    cache = SnapshotCache(store)
    for i in range(100):
        cache.append(_record(i))

    assert store.path.exists()
    on_disk = json.loads(store.path.read_text())
    assert on_disk == cache.to_wire()
    assert len(on_disk) == 100
    assert cache.writes == 1


def test_reload_reproduces_buffer(store):
    cache = SnapshotCache(store)
    for i in range(100):
        cache.append(_record(i))

    reloaded = SnapshotCache(store)
    assert reloaded.load() == 100
    assert reloaded.to_wire() == cache.to_wire()


def test_force_persists_immediately(store):
    cache = SnapshotCache(store)
    cache.append(_record(0))
    assert cache.append(_record(1, ax=40.0), force=True) is True
    assert len(json.loads(store.path.read_text())) == 2


def test_missing_file_loads_empty(store):
    cache = SnapshotCache(store)
    assert cache.load() == 0
    assert len(cache) == 0


def test_corrupt_file_loads_empty(store):
    store.path.write_text("{not json")
    cache = SnapshotCache(store)
    cache.append(_record(0))
    assert cache.load() == 0
    assert len(cache) == 0


def test_non_array_file_loads_empty(store):
    store.path.write_text(json.dumps({"records": []}))
    assert SnapshotCache(store).load() == 0


def test_malformed_entry_loads_empty(store):
    store.path.write_text(json.dumps([{"device_id": "D1"}]))
    assert SnapshotCache(store).load() == 0


def test_write_failure_keeps_buffer():
    broken = BrokenStore()
    cache = SnapshotCache(broken, persist_every=2)
    for i in range(4):
        cache.append(_record(i))
    assert broken.attempts == 2
    assert cache.write_errors == 2
    assert len(cache) == 4
    assert cache.load() == 0


def test_store_refuses_non_finite_numbers(store):
    store.save([{"timestamp": 1}])
    with pytest.raises(PersistenceFailure):
        store.save([{"timestamp": 2, "magnitude": float("nan")}])
    # The previous snapshot is left intact
    assert json.loads(store.path.read_text()) == [{"timestamp": 1}]


def test_clear_backs_up_and_deletes(store, tmp_path):
    cache = SnapshotCache(store)
    for i in range(100):
        cache.append(_record(i))
    wire_before = cache.to_wire()

    backup = cache.clear(1700000000000)

    assert backup.name == "sensor-data-cache-backup-1700000000000.json"
    assert json.loads(backup.read_text()) == wire_before
    assert not store.path.exists()
    assert len(cache) == 0


def test_clear_failure_keeps_buffer():
    cache = SnapshotCache(BrokenStore(), persist_every=1000)
    cache.append(_record(0))
    with pytest.raises(PersistenceFailure):
        cache.clear(1)
    assert len(cache) == 1


def test_query_numeric_range_and_limit(store):
    cache = SnapshotCache(store)
    for i in range(50):
        cache.append(_record(i))

    records, total = cache.query(limit=5, start="10", end="29")
    assert total == 20
    assert [r.timestamp for r in records] == [25, 26, 27, 28, 29]


def test_query_iso_range(store):
    cache = SnapshotCache(store)
    stamps = ["2024-01-01T00:00:00Z", "2024-01-02T00:00:00Z", "2024-01-03T00:00:00Z"]
    for i, ts in enumerate(stamps):
        cache.append(_record(i, timestamp=ts))

    records, total = cache.query(limit=100, start="2024-01-02T00:00:00Z")
    assert total == 2
    assert [r.timestamp for r in records] == stamps[1:]

    records, total = cache.query(limit=100, end="2024-01-01T12:00:00Z")
    assert [r.timestamp for r in records] == stamps[:1]
