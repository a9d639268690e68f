"""The Hub aggregate.

Owns every piece of shared state (connection registry, device directory,
recent-data and alert buffers, snapshot cache) and the collaborators that act
on it. One Hub serves one process; handlers receive it explicitly instead of
reaching for module globals.

All mutation happens on the event loop thread. Methods that await always
finish their state changes before the first ``await``.
"""

from __future__ import annotations

import itertools
import time
from collections import deque
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from quakehub.core.broadcast import DASHBOARD_SENTINEL, Broadcaster
from quakehub.core.devices import DEFAULT_HISTORY_SIZE, DeviceDirectory
from quakehub.core.liveness import LivenessMonitor
from quakehub.core.models import Alert, Connection, EnrichedRecord, iso_timestamp
from quakehub.core.processor import TelemetryProcessor
from quakehub.core.registry import ConnectionRegistry, make_connection_id
from quakehub.core.snapshot import DEFAULT_MAX_SIZE, DEFAULT_PERSIST_EVERY, SnapshotCache
from quakehub.core.stats import HubStats
from quakehub.scoring.seismic import DEFAULT_EARTHQUAKE_THRESHOLD, SeismicScorer

if TYPE_CHECKING:
    from quakehub.scoring.base import Scorer
    from quakehub.storage.base import SnapshotStore
    from quakehub.transport.base import Peer

log = structlog.get_logger()

DEFAULT_HEARTBEAT_INTERVAL = 30.0
DEFAULT_RECENT_DATA_SIZE = 100
DEFAULT_ALERT_HISTORY_SIZE = 10


class Hub:
    def __init__(
        self,
        store: SnapshotStore,
        *,
        scorer: Scorer | None = None,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        history_size: int = DEFAULT_HISTORY_SIZE,
        recent_data_size: int = DEFAULT_RECENT_DATA_SIZE,
        alert_history_size: int = DEFAULT_ALERT_HISTORY_SIZE,
        earthquake_threshold: float = DEFAULT_EARTHQUAKE_THRESHOLD,
        dashboard_sentinel: str = DASHBOARD_SENTINEL,
        cache_max_size: int = DEFAULT_MAX_SIZE,
        persist_every: int = DEFAULT_PERSIST_EVERY,
        clock: Callable[[], float] = time.time,
        stats: HubStats | None = None,
    ) -> None:
        self.clock = clock
        self.heartbeat_interval = heartbeat_interval
        self.earthquake_threshold = earthquake_threshold
        self.started_at = clock()
        self._id_seq = itertools.count(1)

        self.scorer: Scorer = scorer or SeismicScorer()
        self.stats = stats or HubStats()
        self.registry = ConnectionRegistry()
        self.devices = DeviceDirectory(history_size=history_size)
        self.recent_data: deque[EnrichedRecord] = deque(maxlen=recent_data_size)
        self.alerts: deque[Alert] = deque(maxlen=alert_history_size)
        self.snapshot = SnapshotCache(store, max_size=cache_max_size, persist_every=persist_every)
        self.broadcaster = Broadcaster(self.registry, self.stats, dashboard_sentinel)

        self.processor = TelemetryProcessor(self)
        self.monitor = LivenessMonitor(self)

    def now_iso(self) -> str:
        return iso_timestamp(self.clock())

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, peer: Peer, ip: str, port: int) -> Connection:
        """Track a freshly accepted connection and send the welcome frame."""
        now = self.clock()
        conn_id = make_connection_id(ip, port, now)
        if self.registry.get(conn_id) is not None:
            conn_id = f"{conn_id}_{next(self._id_seq)}"
        conn = Connection(
            id=conn_id,
            peer=peer,
            ip=ip,
            port=port,
            connected_at=now,
            last_seen=now,
        )
        self.registry.register(conn)
        self.stats.record_connection_opened()
        log.info("connection_opened", connection=conn.id, ip=ip)

        await self.broadcaster.send(conn, {
            "type": "connection_established",
            "server_time": iso_timestamp(now),
            "client_id": conn.id,
            "message": "WebSocket connection established",
        })
        return conn

    async def disconnect(self, conn: Connection) -> bool:
        """Clean up after a transport close. Safe to call more than once."""
        if not self._release(conn):
            return False
        self.stats.record_connection_closed()
        log.info("connection_closed", connection=conn.id, device=conn.device_id)
        await self._announce_disconnect(conn)
        return True

    async def evict(self, conn: Connection) -> bool:
        """Forcefully drop a stale connection. Safe to call more than once."""
        if not self._release(conn):
            return False
        self.stats.record_connection_closed(evicted=True)
        log.warning("connection_evicted", connection=conn.id, device=conn.device_id,
                    silent_seconds=round(self.clock() - conn.last_seen, 1))
        try:
            await conn.peer.terminate()
        except Exception:
            log.warning("terminate_failed", connection=conn.id, exc_info=True)
        await self._announce_disconnect(conn)
        return True

    def _release(self, conn: Connection) -> bool:
        if self.registry.remove(conn) is None:
            return False
        if conn.device_id:
            self.devices.mark_disconnected(conn.device_id, self.clock())
        return True

    async def _announce_disconnect(self, conn: Connection) -> None:
        if not conn.device_id:
            return
        await self.broadcaster.to_dashboards({
            "type": "device_status",
            "device_id": conn.device_id,
            "status": "disconnected",
            "timestamp": self.now_iso(),
        })

    async def shutdown(self) -> None:
        """Tell every open connection the server is going away, then close them."""
        notice = {
            "type": "server_shutdown",
            "message": "Server is shutting down",
            "timestamp": self.now_iso(),
        }
        conns = list(self.registry)
        await self.broadcaster.to_all(notice)
        for conn in conns:
            self.registry.remove(conn)
            try:
                await conn.peer.terminate()
            except Exception:
                log.warning("terminate_failed", connection=conn.id, exc_info=True)
        log.info("hub_shutdown", connections=len(conns))

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------

    def health(self) -> dict:
        return {
            "status": "healthy",
            "timestamp": self.now_iso(),
            "connections": len(self.registry),
            "devices": len(self.devices),
            "uptime": round(self.clock() - self.started_at, 3),
            "pps": self.stats.pps,
        }

    def devices_snapshot(self) -> list[dict]:
        return [device.to_dict() for device in self.devices.all()]

    def recent_snapshot(self) -> list[dict]:
        return [record.to_dict() for record in self.recent_data]

    def alerts_snapshot(self) -> list[dict]:
        return [alert.to_dict() for alert in self.alerts]
