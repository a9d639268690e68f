"""Read-only views over hub state, plus the destructive cache clear."""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from quakehub.exceptions import PersistenceFailure

router = APIRouter(prefix="/api")

log = structlog.get_logger()

DEFAULT_LIMIT = 100


def _effective_limit(limit: int) -> int:
    # Zero or negative falls back to the default, like an absent limit.
    return limit if limit > 0 else DEFAULT_LIMIT


@router.get("/devices")
async def list_devices() -> dict:
    from quakehub.main import get_hub

    return {"devices": get_hub().devices_snapshot()}


@router.get("/device/{device_id}/data")
async def device_data(
    device_id: str,
    limit: int = Query(default=DEFAULT_LIMIT),
) -> JSONResponse:
    """Return the newest ``limit`` history entries for one device."""
    from quakehub.main import get_hub

    device = get_hub().devices.get(device_id)
    if device is None:
        return JSONResponse(content={"error": "device not found"}, status_code=404)

    history = list(device.history)[-_effective_limit(limit):]
    return JSONResponse(content={
        "device_id": device_id,
        "data": [record.to_dict() for record in history],
    })


@router.get("/recent-data")
async def recent_data() -> dict:
    from quakehub.main import get_hub

    return {"recent_data": get_hub().recent_snapshot()}


@router.get("/alerts")
async def alerts() -> dict:
    from quakehub.main import get_hub

    return {"alerts": get_hub().alerts_snapshot()}


@router.get("/history-data")
async def history_data(
    limit: int = Query(default=DEFAULT_LIMIT),
    start: str | None = Query(default=None, alias="from"),
    end: str | None = Query(default=None, alias="to"),
) -> dict:
    """Query the snapshot cache by client timestamp range.

    ``from`` and ``to`` are inclusive and compared numerically when both
    sides are numbers, as text otherwise (ISO 8601 strings sort correctly).
    """
    from quakehub.main import get_hub

    records, total = get_hub().snapshot.query(limit=_effective_limit(limit), start=start, end=end)
    return {
        "history_data": [record.to_dict() for record in records],
        "total_count": total,
        "returned_count": len(records),
    }


@router.post("/clear-cache")
async def clear_cache() -> JSONResponse:
    """Back up and clear the snapshot cache, then delete the snapshot file."""
    from quakehub.main import get_hub

    try:
        backup = get_hub().snapshot.clear(int(time.time() * 1000))
    except PersistenceFailure:
        log.error("clear_cache_failed", exc_info=True)
        return JSONResponse(content={"error": "failed to clear cache"}, status_code=500)

    return JSONResponse(content={"message": "cache cleared", "backup": backup.name})
