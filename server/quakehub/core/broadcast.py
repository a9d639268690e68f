"""Best-effort, at-most-once fan-out to connected peers.

Targets are chosen when the call starts; a peer that is not open is skipped
and a failed send is logged and dropped. Nothing is queued or retried.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

import structlog

from quakehub.core.models import ConnectionRole

if TYPE_CHECKING:
    from quakehub.core.models import Connection
    from quakehub.core.registry import ConnectionRegistry
    from quakehub.core.stats import HubStats

log = structlog.get_logger()

DASHBOARD_SENTINEL = "DASHBOARD"


class Broadcaster:
    def __init__(
        self,
        registry: ConnectionRegistry,
        stats: HubStats,
        dashboard_sentinel: str = DASHBOARD_SENTINEL,
    ) -> None:
        self._registry = registry
        self._stats = stats
        self._sentinel = dashboard_sentinel

    def is_dashboard(self, conn: Connection) -> bool:
        return conn.role is ConnectionRole.DASHBOARD or conn.device_id == self._sentinel

    async def send(self, conn: Connection, payload: dict) -> bool:
        """Send to a single connection (replies, catch-up payloads)."""
        return await self._send_text(conn, json.dumps(payload, allow_nan=False))

    async def to_dashboards(self, payload: dict) -> int:
        return await self._deliver(self._registry.select(self.is_dashboard), payload)

    async def to_all(self, payload: dict) -> int:
        return await self._deliver(self._registry.select(lambda conn: True), payload)

    async def _deliver(self, targets: list[Connection], payload: dict) -> int:
        targets = [conn for conn in targets if conn.peer.is_open]
        if not targets:
            return 0
        text = json.dumps(payload, allow_nan=False)
        results = await asyncio.gather(*(self._send_text(conn, text) for conn in targets))
        return sum(1 for ok in results if ok)

    async def _send_text(self, conn: Connection, text: str) -> bool:
        if not conn.peer.is_open:
            return False
        try:
            await conn.peer.send(text)
            return True
        except Exception:
            self._stats.record_send_failure()
            log.warning("send_failed", connection=conn.id, exc_info=True)
            return False
