"""Liveness monitor: periodic sweep that evicts silent connections."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from quakehub.core.hub import Hub
    from quakehub.core.models import Connection

log = structlog.get_logger()


class LivenessMonitor:
    """Evicts connections silent for more than twice the heartbeat interval.

    A connection's ``last_seen`` moves on every inbound message and on every
    ping its peer answers (see :meth:`ping_loop`).
    """

    def __init__(self, hub: Hub) -> None:
        self._hub = hub

    @property
    def timeout(self) -> float:
        return self._hub.heartbeat_interval * 2

    async def sweep(self) -> int:
        """Evict every stale connection once. Returns how many were evicted."""
        hub = self._hub
        stale = hub.registry.stale(hub.clock(), self.timeout)
        evicted = 0
        for conn in stale:
            if await hub.evict(conn):
                evicted += 1
        if evicted:
            log.info("liveness_sweep", evicted=evicted, remaining=len(hub.registry))
        return evicted

    async def run(self) -> None:
        """Sweep every heartbeat interval. Runs as a background task."""
        log.info("liveness_monitor_started", interval=self._hub.heartbeat_interval)
        while True:
            await asyncio.sleep(self._hub.heartbeat_interval)
            try:
                await self.sweep()
            except Exception:
                log.error("liveness_sweep_failed", exc_info=True)

    async def ping(self, conn: Connection) -> bool:
        """Ping one connection; an answered ping refreshes ``last_seen``."""
        hub = self._hub
        try:
            answered = await conn.peer.ping()
        except Exception:
            log.debug("ping_failed", connection=conn.id, exc_info=True)
            return False
        if answered:
            hub.registry.touch(conn, hub.clock())
        return answered

    async def ping_loop(self, conn: Connection) -> None:
        """Ping one connection every heartbeat interval until its peer closes.

        Never evicts; a peer that stops answering is left for :meth:`sweep`.
        """
        while True:
            await asyncio.sleep(self._hub.heartbeat_interval)
            if not conn.peer.is_open:
                return
            await self.ping(conn)
