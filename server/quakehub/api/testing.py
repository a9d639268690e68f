"""Synthetic earthquake injection.

Builds a fake sample and feeds it through the same pipeline real devices
use. The target device must already be registered, otherwise the sample is
dropped like any other unregistered data.
"""

from __future__ import annotations

import json
import math

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(prefix="/api")

DEFAULT_MAGNITUDE = 4.5
DEFAULT_DEVICE_ID = "test_device"


def make_synthetic_sample(magnitude: float, device_id: str, timestamp: str) -> dict:
    return {
        "type": "sensor_data",
        "device_id": device_id,
        "timestamp": timestamp,
        "ax": magnitude * 0.1,
        "ay": magnitude * 0.2,
        "az": magnitude * 0.3,
        "gx": 0,
        "gy": 0,
        "gz": 0,
    }


@router.post("/test/earthquake")
async def trigger_test_earthquake(request: Request) -> JSONResponse:
    from quakehub.main import get_hub

    body_bytes = await request.body()
    try:
        body = json.loads(body_bytes) if body_bytes else {}
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(content={"error": "invalid JSON"}, status_code=400)
    if not isinstance(body, dict):
        return JSONResponse(content={"error": "body must be a JSON object"}, status_code=400)

    try:
        magnitude = float(body.get("magnitude", DEFAULT_MAGNITUDE))
    except (TypeError, ValueError, OverflowError):
        return JSONResponse(content={"error": "magnitude must be a number"}, status_code=422)
    if not math.isfinite(magnitude):
        return JSONResponse(content={"error": "magnitude must be finite"}, status_code=422)
    device_id = str(body.get("device_id") or DEFAULT_DEVICE_ID)

    hub = get_hub()
    sample = make_synthetic_sample(magnitude, device_id, hub.now_iso())
    record = await hub.processor.ingest_sensor_data(sample)

    return JSONResponse(content={
        "message": "test earthquake triggered",
        "magnitude": magnitude,
        "timestamp": sample["timestamp"],
        "accepted": record is not None,
        "is_earthquake": record.is_earthquake if record is not None else False,
    })
