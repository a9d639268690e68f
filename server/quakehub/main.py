"""QuakeHub server: main entry point.

This is the only file that knows about concrete implementations.
It wires together the hub, snapshot storage, and API layers.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
import uvicorn
from fastapi import FastAPI

from quakehub.api.data import router as data_router
from quakehub.api.monitoring import router as monitoring_router
from quakehub.api.stream import router as stream_router
from quakehub.api.testing import router as testing_router
from quakehub.config import AppConfig, load_config
from quakehub.core.hub import Hub
from quakehub.storage.file_storage import FileSnapshotStore
from quakehub.transport.uvicorn_ws import PongAwareWebSocketProtocol

log = structlog.get_logger()

# Module-level singletons (set during startup)
_hub: Hub | None = None
_config: AppConfig | None = None


def get_hub() -> Hub:
    assert _hub is not None, "Server not initialized"
    return _hub


def get_config() -> AppConfig:
    assert _config is not None, "Server not initialized"
    return _config


def _setup_logging(config: AppConfig) -> None:
    """Configure structlog based on the logging config."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.logging.format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    logger_factory = structlog.PrintLoggerFactory()
    if config.logging.file:
        log_path = Path(config.logging.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger_factory = structlog.WriteLoggerFactory(file=log_path.open("a", encoding="utf-8"))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.logging.level.upper()),
        ),
        logger_factory=logger_factory,
    )


def build_hub(config: AppConfig) -> Hub:
    store = FileSnapshotStore(cache_dir=config.cache.dir, file_name=config.cache.file_name)
    return Hub(
        store,
        heartbeat_interval=config.hub.heartbeat_interval_seconds,
        history_size=config.hub.history_size,
        recent_data_size=config.hub.recent_data_size,
        alert_history_size=config.hub.alert_history_size,
        earthquake_threshold=config.hub.earthquake_threshold,
        dashboard_sentinel=config.hub.dashboard_sentinel,
        cache_max_size=config.cache.max_size,
        persist_every=config.cache.persist_every,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    global _hub, _config

    _config = load_config()
    _setup_logging(_config)

    log.info("server_starting",
             env=_config.server.env,
             cache_dir=_config.cache.dir,
             heartbeat_interval=_config.hub.heartbeat_interval_seconds)

    _hub = build_hub(_config)
    loaded = _hub.snapshot.load()

    # Start background liveness sweep
    monitor_task = asyncio.create_task(_hub.monitor.run())

    log.info("server_started",
             host=_config.server.host,
             port=_config.server.port,
             cached_records=loaded)

    yield

    # Shutdown
    await _hub.shutdown()
    monitor_task.cancel()
    try:
        await monitor_task
    except asyncio.CancelledError:
        pass
    log.info("server_stopped")


app = FastAPI(
    title="QuakeHub",
    description="Seismic sensor telemetry hub",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(monitoring_router)
app.include_router(data_router)
app.include_router(testing_router)
app.include_router(stream_router)


def run() -> None:
    """Console entry point. Bind failures propagate and end the process."""
    config = load_config()
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        # The hub sends its own protocol pings and tracks the pongs.
        ws=PongAwareWebSocketProtocol,
        ws_ping_interval=None,
    )


if __name__ == "__main__":
    run()
