"""Shared test fixtures."""

from __future__ import annotations

import itertools
import json

import pytest
from httpx import ASGITransport, AsyncClient

import quakehub.main as main_module
from quakehub.config import AppConfig
from quakehub.core.hub import Hub
from quakehub.storage.file_storage import FileSnapshotStore


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePeer:
    """Peer that records every frame it is sent, decoded from JSON."""

    def __init__(self) -> None:
        self.is_open = True
        self.sent: list[dict] = []
        self.pings = 0
        self.answers_pings = True
        self.terminated = 0

    async def send(self, text: str) -> None:
        if not self.is_open:
            raise RuntimeError("peer closed")
        self.sent.append(json.loads(text))

    async def ping(self) -> bool:
        self.pings += 1
        return self.answers_pings

    async def terminate(self) -> None:
        self.terminated += 1
        self.is_open = False

    def of_type(self, msg_type: str) -> list[dict]:
        return [m for m in self.sent if m.get("type") == msg_type]

    def types(self) -> list[str]:
        return [m.get("type") for m in self.sent]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    return FileSnapshotStore(cache_dir=tmp_path / "cache")


@pytest.fixture
def hub(store, clock):
    return Hub(store, clock=clock)


@pytest.fixture(autouse=True)
def _init_server(tmp_path, hub):
    """Initialize server singletons for every test, using a temp directory."""
    config = AppConfig()
    config.cache.dir = str(tmp_path / "cache")
    config.logging.level = "warning"

    # Patch module-level singletons
    main_module._config = config
    main_module._hub = hub

    yield

    # Cleanup
    main_module._config = None
    main_module._hub = None


@pytest.fixture
def connect(hub):
    """Open a fake connection on the hub. Returns ``(conn, peer)``."""
    ports = itertools.count(40000)

    async def _connect(ip: str = "10.0.0.7"):
        peer = FakePeer()
        conn = await hub.connect(peer, ip, next(ports))
        return conn, peer

    return _connect


@pytest.fixture
def send(hub):
    """Deliver a message dict (or raw text) from ``conn`` to the hub."""

    async def _send(conn, message):
        text = message if isinstance(message, str) else json.dumps(message)
        await hub.processor.handle_message(conn, text)

    return _send


@pytest.fixture
def register_device(connect, send):
    """Connect and register a device. Returns ``(conn, peer)``."""

    async def _register(device_id: str = "D1", location: str | None = "Lab"):
        conn, peer = await connect()
        message = {"type": "device_register", "device_id": device_id}
        if location is not None:
            message["location"] = location
        await send(conn, message)
        return conn, peer

    return _register


@pytest.fixture
def dashboard(connect, send):
    """Connect a monitor client and discard its catch-up frames."""

    async def _dashboard():
        conn, peer = await connect("10.0.0.99")
        await send(conn, {"type": "client_register", "client_type": "monitor"})
        peer.sent.clear()
        return conn, peer

    return _dashboard


def sample(device_id: str = "D1", ax=0.5, ay=0.4, az=0.45, gx=0, gy=0, gz=0, timestamp="2024-01-01T00:00:00Z") -> dict:
    return {
        "type": "sensor_data",
        "device_id": device_id,
        "timestamp": timestamp,
        "ax": ax, "ay": ay, "az": az,
        "gx": gx, "gy": gy, "gz": gz,
    }


@pytest.fixture
def make_sample():
    return sample


@pytest.fixture
async def client():
    from quakehub.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
