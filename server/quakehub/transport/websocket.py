"""Starlette WebSocket implementation of Peer."""

from __future__ import annotations

import json
import time

import structlog
from starlette.websockets import WebSocket, WebSocketState

from quakehub.core.models import iso_timestamp
from quakehub.transport.uvicorn_ws import PING_EXTENSION

log = structlog.get_logger()


class WebSocketPeer:
    """Peer backed by an accepted FastAPI/Starlette WebSocket.

    Served by :class:`~quakehub.transport.uvicorn_ws.PongAwareWebSocketProtocol`,
    ``ping`` sends a protocol-level ping and waits up to ``ping_timeout``
    seconds for the pong. Under any other server it falls back to a
    ``{"type": "ping"}`` text frame; clients that answer it with
    ``{"type": "pong"}`` refresh their connection like any inbound message.
    """

    def __init__(self, websocket: WebSocket, ping_timeout: float = 30.0) -> None:
        self._websocket = websocket
        self._ping_timeout = ping_timeout

    @property
    def is_open(self) -> bool:
        return (
            self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, text: str) -> None:
        await self._websocket.send_text(text)

    async def ping(self) -> bool:
        await_pong = (self._websocket.scope.get("extensions") or {}).get(PING_EXTENSION)
        if await_pong is not None:
            return await await_pong(self._ping_timeout)
        await self.send(json.dumps({"type": "ping", "timestamp": iso_timestamp(time.time())}))
        return False

    async def terminate(self) -> None:
        if not self.is_open:
            return
        try:
            await self._websocket.close(code=1001)
        except RuntimeError:
            # Already closed by the other side.
            log.debug("websocket_close_skipped", exc_info=True)
