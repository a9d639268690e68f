"""Connection registry.

Tracks every live connection from accept to close, including connections
that never register, so liveness sweeps and the welcome handshake treat them
uniformly.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator

from quakehub.core.models import Connection, ConnectionRole


def make_connection_id(ip: str, port: int, now: float) -> str:
    """Build an id from the peer address and the accept time in ms."""
    safe_ip = ip.replace(".", "_").replace(":", "_")
    return f"client_{safe_ip}_{port}_{int(now * 1000)}"


class ConnectionRegistry:
    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}

    def register(self, conn: Connection) -> None:
        """Add a new connection with role=unclassified."""
        if conn.id in self._connections:
            raise ValueError(f"connection {conn.id} already registered")
        conn.role = ConnectionRole.UNCLASSIFIED
        self._connections[conn.id] = conn

    def set_role(self, conn: Connection, role: ConnectionRole, client_type: str | None = None) -> None:
        conn.role = role
        if client_type is not None:
            conn.client_type = client_type

    def bind_device(self, conn: Connection, device_id: str) -> None:
        conn.device_id = device_id
        conn.role = ConnectionRole.DEVICE

    def touch(self, conn: Connection, now: float) -> None:
        conn.last_seen = now

    def remove(self, conn: Connection) -> Connection | None:
        """Remove a connection. Returns ``None`` if it was already gone."""
        current = self._connections.get(conn.id)
        if current is not conn:
            return None
        del self._connections[conn.id]
        return conn

    def get(self, conn_id: str) -> Connection | None:
        return self._connections.get(conn_id)

    def __contains__(self, conn: Connection) -> bool:
        return self._connections.get(conn.id) is conn

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator[Connection]:
        # Iterate over a copy: callers may remove while walking.
        return iter(list(self._connections.values()))

    def select(self, predicate: Callable[[Connection], bool]) -> list[Connection]:
        return [conn for conn in self._connections.values() if predicate(conn)]

    def stale(self, now: float, timeout: float) -> list[Connection]:
        """Connections silent for strictly longer than ``timeout`` seconds."""
        return self.select(lambda conn: now - conn.last_seen > timeout)
