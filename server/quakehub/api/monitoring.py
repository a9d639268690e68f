"""Health check and monitoring endpoints."""

from __future__ import annotations

from fastapi import APIRouter

router = APIRouter()


@router.get("/health")
async def health() -> dict:
    """Basic health check: connections, devices, uptime and current pps."""
    from quakehub.main import get_hub

    return get_hub().health()


@router.get("/api/stats")
async def stats() -> dict:
    """Detailed hub statistics.

    The ``buffers`` section reports the fill level of each bounded buffer;
    ``snapshot`` reports how many whole-file writes succeeded or failed.
    """
    from quakehub.main import get_hub

    hub = get_hub()
    result = hub.stats.snapshot()
    result["buffers"] = {
        "recent_data": len(hub.recent_data),
        "alerts": len(hub.alerts),
        "snapshot_cache": len(hub.snapshot),
    }
    result["snapshot"] = {
        "writes": hub.snapshot.writes,
        "write_errors": hub.snapshot.write_errors,
    }
    result["active"] = {
        "connections": len(hub.registry),
        "devices": len(hub.devices),
    }
    return result
