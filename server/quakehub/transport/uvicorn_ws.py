"""uvicorn WebSocket protocol that lets the application await real pongs.

ASGI has no event for protocol-level pong frames. This subclass of uvicorn's
``websockets`` implementation publishes a ``quakehub.ping`` scope extension:
an async callable that sends a protocol ping and reports whether the
matching pong arrived within the given timeout.
"""

from __future__ import annotations

import asyncio

from uvicorn.protocols.websockets.websockets_impl import WebSocketProtocol
from websockets.exceptions import ConnectionClosed

PING_EXTENSION = "quakehub.ping"


class PongAwareWebSocketProtocol(WebSocketProtocol):
    async def run_asgi(self) -> None:
        self.scope.setdefault("extensions", {})[PING_EXTENSION] = self.await_pong
        await super().run_asgi()

    async def await_pong(self, timeout: float) -> bool:
        try:
            pong_waiter = await self.ping()
            await asyncio.wait_for(pong_waiter, timeout)
        except (asyncio.TimeoutError, ConnectionClosed):
            return False
        return True
