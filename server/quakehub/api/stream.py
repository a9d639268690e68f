"""WebSocket endpoint shared by devices and dashboards.

This is the thin FastAPI adapter: it accepts the socket, hands every text
frame to the hub's processor, and makes sure the hub hears about the close.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, WebSocket

from quakehub.transport.websocket import WebSocketPeer

router = APIRouter()

log = structlog.get_logger()


def _frame_text(message: dict) -> str:
    text = message.get("text")
    if text is not None:
        return text
    return (message.get("bytes") or b"").decode("utf-8", errors="replace")


@router.websocket("/")
@router.websocket("/ws")
async def telemetry_stream(websocket: WebSocket) -> None:
    from quakehub.main import get_hub

    hub = get_hub()
    await websocket.accept()

    peer = WebSocketPeer(websocket, ping_timeout=hub.heartbeat_interval)
    ip, port = (websocket.client.host, websocket.client.port) if websocket.client else ("unknown", 0)
    conn = await hub.connect(peer, ip, port)
    pinger = asyncio.create_task(hub.monitor.ping_loop(conn))

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            await hub.processor.handle_message(conn, _frame_text(message))
    except Exception:
        log.error("websocket_error", connection=conn.id, exc_info=True)
    finally:
        pinger.cancel()
        try:
            await pinger
        except asyncio.CancelledError:
            pass
        except Exception:
            log.error("ping_loop_failed", connection=conn.id, exc_info=True)
        await hub.disconnect(conn)
