"""Telemetry processor: validates, enriches, and routes inbound messages.

This is the core business logic. Each inbound text frame is parsed once and
dispatched on its ``type``. Handlers validate and mutate hub state in one
synchronous step and only then await replies and broadcasts, so a sweep or
another connection's message interleaving at an ``await`` always sees
consistent state.

Nothing raised inside a handler escapes ``handle_message``: malformed frames
get an ``error`` reply, validation failures are logged and dropped, anything
else is logged with its traceback.
"""

from __future__ import annotations

import json
import math
from typing import TYPE_CHECKING, Any

import structlog

from quakehub.core.models import AXES, Alert, ConnectionRole, EnrichedRecord, iso_timestamp
from quakehub.exceptions import MalformedMessage, ValidationFailure

if TYPE_CHECKING:
    from quakehub.core.hub import Hub
    from quakehub.core.models import Connection

log = structlog.get_logger()

# client_register.client_type -> role. Other values leave the role as is.
_ROLE_BY_CLIENT_TYPE = {
    "monitor": ConnectionRole.DASHBOARD,
    "dashboard": ConnectionRole.DASHBOARD,
    "device": ConnectionRole.DEVICE,
}


def _reject_constant(token: str) -> float:
    raise MalformedMessage(f"non-finite number {token} is not valid JSON")


def _finite_float(token: str) -> float:
    value = float(token)
    if not math.isfinite(value):
        raise MalformedMessage(f"number {token} is out of range")
    return value


def parse_frame(text: str) -> dict:
    """Parse a frame as strict JSON: NaN, Infinity and overflowing numbers are refused."""
    try:
        data = json.loads(text, parse_constant=_reject_constant, parse_float=_finite_float)
    except (ValueError, TypeError, RecursionError) as exc:
        raise MalformedMessage(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedMessage("message body must be a JSON object")
    return data


def _device_id(data: dict) -> str | None:
    value = data.get("device_id")
    if isinstance(value, str) and value:
        return value
    return None


def parse_axes(data: dict) -> dict[str, float]:
    """Parse the six axis fields as finite floats."""
    axes: dict[str, float] = {}
    for key in AXES:
        raw = data.get(key)
        if isinstance(raw, bool):
            raise ValidationFailure(f"invalid value for {key}: {raw!r}")
        try:
            value = float(raw)
        except (TypeError, ValueError, OverflowError):
            raise ValidationFailure(f"invalid value for {key}: {raw!r}") from None
        if not math.isfinite(value):
            raise ValidationFailure(f"invalid value for {key}: {raw!r}")
        axes[key] = value
    return axes


class TelemetryProcessor:
    """Routes device and dashboard messages against one Hub."""

    def __init__(self, hub: Hub) -> None:
        self._hub = hub
        self._handlers = {
            "sensor_data": self._handle_sensor_data,
            "device_register": self._handle_device_register,
            "heartbeat": self._handle_heartbeat,
            "status_update": self._handle_status_update,
            "client_register": self._handle_client_register,
            "pong": self._handle_pong,
        }

    async def handle_message(self, conn: Connection, text: str) -> None:
        """Process one inbound frame from ``conn``. Never raises."""
        hub = self._hub
        hub.stats.record_message()
        hub.registry.touch(conn, hub.clock())

        try:
            data = parse_frame(text)
        except MalformedMessage as exc:
            hub.stats.record_malformed()
            log.error("malformed_message", connection=conn.id, error=str(exc))
            await hub.broadcaster.send(conn, {"type": "error", "message": "invalid JSON"})
            return

        msg_type = data.get("type")
        if not msg_type:
            log.warning("message_without_type", connection=conn.id)
            return

        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            hub.stats.record_unknown()
            log.warning("unknown_message_type", connection=conn.id, type=msg_type)
            return

        try:
            await handler(conn, data)
        except Exception:
            log.error("handler_failed", connection=conn.id, type=msg_type, exc_info=True)

    # ------------------------------------------------------------------
    # sensor_data
    # ------------------------------------------------------------------

    async def ingest_sensor_data(self, data: dict, conn: Connection | None = None) -> EnrichedRecord | None:
        """Run one sample through the pipeline.

        ``conn`` is None for synthetic samples injected over HTTP; those get
        no acknowledgement. Returns the record, or None if it was rejected.
        """
        hub = self._hub
        try:
            record, alert = self._accept_sample(data)
        except ValidationFailure as exc:
            hub.stats.record_rejected()
            log.warning("sensor_data_rejected",
                        connection=conn.id if conn else None,
                        device=data.get("device_id"),
                        reason=str(exc))
            return None

        log.info("sensor_data",
                 device=record.device_id,
                 magnitude=round(record.magnitude, 2),
                 intensity=round(record.intensity, 2),
                 jma_intensity=record.jma_intensity,
                 type=record.earthquake_type,
                 alert=record.alert_level,
                 earthquake=record.is_earthquake)

        wire = record.to_dict()
        if conn is not None:
            await hub.broadcaster.send(conn, {
                "type": "data_received",
                "timestamp": hub.now_iso(),
                "magnitude": wire["magnitude"],
                "is_earthquake": record.is_earthquake,
            })
        await hub.broadcaster.to_dashboards(wire)

        if alert is not None:
            log.warning("earthquake_alert", device=alert.device_id,
                        magnitude=alert.magnitude, location=alert.location)
            await hub.broadcaster.to_all(alert.to_dict())
        return record

    async def _handle_sensor_data(self, conn: Connection, data: dict) -> None:
        await self.ingest_sensor_data(data, conn)

    def _accept_sample(self, data: dict) -> tuple[EnrichedRecord, Alert | None]:
        """Validate, enrich, and record a sample. All-or-nothing."""
        hub = self._hub
        device_id = _device_id(data)
        timestamp = data.get("timestamp")
        if device_id is None or not timestamp:
            raise ValidationFailure("device_id and timestamp are required")

        device = hub.devices.get(device_id)
        if device is None:
            raise ValidationFailure(f"device {device_id} is not registered")

        axes = parse_axes(data)

        # Validation done; from here on state changes.
        now = hub.clock()
        record = self._enrich(device_id, timestamp, axes, device.location, now)

        hub.devices.touch(device_id, now)
        hub.devices.append_history(device_id, record)
        hub.recent_data.append(record)
        hub.snapshot.append(record, force=record.is_earthquake)
        hub.stats.record_sample()

        alert = None
        if record.is_earthquake:
            alert = self._make_alert(record)
            hub.alerts.append(alert)
            hub.stats.record_alert()
        return record, alert

    def _enrich(
        self,
        device_id: str,
        timestamp: Any,
        axes: dict[str, float],
        location: str | None,
        now: float,
    ) -> EnrichedRecord:
        scorer = self._hub.scorer
        metrics = scorer.enrich(axes["ax"], axes["ay"], axes["az"])
        energy = scorer.energy(metrics.magnitude)
        derived = (metrics.magnitude, metrics.intensity, metrics.jma_intensity,
                   metrics.pga, metrics.pga_corrected, energy)
        if not all(math.isfinite(value) for value in derived):
            raise ValidationFailure("acceleration out of range")
        assessment = scorer.assess_alert(metrics.magnitude, metrics.intensity)
        return EnrichedRecord(
            device_id=device_id,
            timestamp=timestamp,
            server_timestamp=iso_timestamp(now),
            magnitude=metrics.magnitude,
            intensity=metrics.intensity,
            jma_intensity=metrics.jma_intensity,
            pga=metrics.pga,
            pga_corrected=metrics.pga_corrected,
            earthquake_type=scorer.classify(metrics.magnitude),
            alert_level=assessment.level,
            alert_message=assessment.message,
            alert_color=assessment.color,
            energy=energy,
            impact_radius=scorer.impact_radius(metrics.magnitude),
            is_earthquake=scorer.is_earthquake(metrics.magnitude, self._hub.earthquake_threshold),
            location=location,
            **axes,
        )

    @staticmethod
    def _make_alert(record: EnrichedRecord) -> Alert:
        # The level is always "warning"; the record's own alert_level
        # carries the graded assessment.
        magnitude = round(record.magnitude, 4)
        return Alert(
            device_id=record.device_id,
            magnitude=magnitude,
            timestamp=record.server_timestamp,
            location=record.location or "unknown location",
            message=f"Seismic activity detected! Magnitude: {magnitude}",
        )

    # ------------------------------------------------------------------
    # Registration, heartbeat, status
    # ------------------------------------------------------------------

    async def _handle_device_register(self, conn: Connection, data: dict) -> None:
        hub = self._hub
        device_id = _device_id(data)
        if device_id is None:
            log.warning("device_register_rejected", connection=conn.id)
            await hub.broadcaster.send(conn, {
                "type": "error",
                "message": "device_id must not be empty",
            })
            return

        location = data.get("location")
        if location is not None and not isinstance(location, str):
            location = str(location)

        now = hub.clock()
        hub.registry.bind_device(conn, device_id)
        device, created = hub.devices.upsert(device_id, location, now)
        log.info("device_registered", connection=conn.id, device=device_id,
                 location=device.location, created=created)

        await hub.broadcaster.send(conn, {
            "type": "device_registered",
            "device_id": device_id,
            "server_time": iso_timestamp(now),
            "message": "Device registered",
        })
        await hub.broadcaster.to_dashboards({
            "type": "device_status",
            "device_id": device_id,
            "location": device.location,
            "status": "connected",
            "timestamp": iso_timestamp(now),
        })

    async def _handle_heartbeat(self, conn: Connection, data: dict) -> None:
        hub = self._hub
        now = hub.clock()
        hub.stats.record_heartbeat()

        device_id = _device_id(data)
        if device_id not in hub.devices:
            device_id = conn.device_id
        if device_id:
            hub.devices.touch(device_id, now)

        await hub.broadcaster.send(conn, {
            "type": "heartbeat_ack",
            "timestamp": iso_timestamp(now),
        })

    async def _handle_status_update(self, conn: Connection, data: dict) -> None:
        hub = self._hub
        device_id = _device_id(data)
        if device_id is None or device_id not in hub.devices:
            log.debug("status_update_ignored", connection=conn.id, device=data.get("device_id"))
            return

        now = hub.clock()
        battery = data.get("battery")
        signal_strength = data.get("signal_strength")
        free_heap = data.get("free_heap")
        hub.devices.update_telemetry(device_id, battery, signal_strength, free_heap, now)

        await hub.broadcaster.to_dashboards({
            "type": "device_status_update",
            "device_id": device_id,
            "battery": battery,
            "signal_strength": signal_strength,
            "free_heap": free_heap,
            "timestamp": iso_timestamp(now),
        })

    async def _handle_client_register(self, conn: Connection, data: dict) -> None:
        hub = self._hub
        client_type = data.get("client_type") or "generic"
        if not isinstance(client_type, str):
            client_type = str(client_type)
        role = _ROLE_BY_CLIENT_TYPE.get(client_type, conn.role)
        hub.registry.set_role(conn, role, client_type)
        log.info("client_registered", connection=conn.id, client_type=client_type, role=role.value)

        await hub.broadcaster.send(conn, {
            "type": "client_registered",
            "client_type": client_type,
            "role": role.value,
            "server_time": hub.now_iso(),
            "message": "Client registered",
        })

        if role is not ConnectionRole.DASHBOARD:
            return

        # Full-state catch-up; everything after this arrives via fan-out.
        health = {"type": "server_health", **hub.health()}
        devices = {"type": "devices_data", "devices": hub.devices_snapshot()}
        recent = {"type": "recent_data", "recent_data": hub.recent_snapshot()}
        for payload in (health, devices, recent):
            await hub.broadcaster.send(conn, payload)

    async def _handle_pong(self, conn: Connection, data: dict) -> None:
        log.debug("pong_received", connection=conn.id)
