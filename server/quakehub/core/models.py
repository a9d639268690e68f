"""QuakeHub core data models.

Plain dataclasses with no framework dependencies. JSON wire dicts are
produced and parsed at the edges via ``to_dict`` / ``from_dict``.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from quakehub.transport.base import Peer

# Axis fields every sensor_data message must carry.
AXES = ("ax", "ay", "az", "gx", "gy", "gz")


def iso_timestamp(epoch_seconds: float) -> str:
    """Render an epoch timestamp as ISO 8601 UTC with millisecond precision."""
    dt = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ConnectionRole(str, Enum):
    UNCLASSIFIED = "unclassified"
    DEVICE = "device"
    DASHBOARD = "dashboard"


class DeviceStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class Enrichment:
    magnitude: float
    intensity: float
    jma_intensity: float
    pga: float
    pga_corrected: float


@dataclass(frozen=True)
class AlertAssessment:
    level: str
    message: str
    color: str


@dataclass(frozen=True)
class ImpactRadius:
    """Radius (km) of each shaking band around the epicentre."""
    extreme: float
    strong: float
    moderate: float
    felt: float

    def to_dict(self) -> dict:
        return {
            "extreme": self.extreme,
            "strong": self.strong,
            "moderate": self.moderate,
            "felt": self.felt,
        }


@dataclass(frozen=True)
class EnrichedRecord:
    """A raw 6-axis sample plus everything the scorer derived from it."""
    device_id: str
    timestamp: Any             # client timestamp, kept exactly as sent
    server_timestamp: str
    ax: float
    ay: float
    az: float
    gx: float
    gy: float
    gz: float
    magnitude: float
    intensity: float
    jma_intensity: float
    pga: float
    pga_corrected: float
    earthquake_type: str
    alert_level: str
    alert_message: str
    alert_color: str
    energy: float
    impact_radius: ImpactRadius
    is_earthquake: bool
    location: str | None = None

    def to_dict(self) -> dict:
        return {
            "type": "sensor_data",
            "device_id": self.device_id,
            "timestamp": self.timestamp,
            "server_timestamp": self.server_timestamp,
            "ax": self.ax,
            "ay": self.ay,
            "az": self.az,
            "gx": self.gx,
            "gy": self.gy,
            "gz": self.gz,
            "magnitude": round(self.magnitude, 4),
            "intensity": round(self.intensity, 4),
            "jma_intensity": round(self.jma_intensity, 4),
            "pga": round(self.pga, 6),
            "pga_corrected": round(self.pga_corrected, 6),
            "earthquake_type": self.earthquake_type,
            "alert_level": self.alert_level,
            "alert_message": self.alert_message,
            "alert_color": self.alert_color,
            "energy": self.energy,
            "impact_radius": self.impact_radius.to_dict(),
            "is_earthquake": self.is_earthquake,
            "location": self.location,
        }

    @classmethod
    def from_dict(cls, data: dict) -> EnrichedRecord:
        """Rebuild a record from its wire form (used when reloading snapshots)."""
        radius = data["impact_radius"]
        return cls(
            device_id=str(data["device_id"]),
            timestamp=data["timestamp"],
            server_timestamp=str(data["server_timestamp"]),
            ax=float(data["ax"]),
            ay=float(data["ay"]),
            az=float(data["az"]),
            gx=float(data["gx"]),
            gy=float(data["gy"]),
            gz=float(data["gz"]),
            magnitude=float(data["magnitude"]),
            intensity=float(data["intensity"]),
            jma_intensity=float(data["jma_intensity"]),
            pga=float(data["pga"]),
            pga_corrected=float(data.get("pga_corrected", data["pga"])),
            earthquake_type=str(data["earthquake_type"]),
            alert_level=str(data["alert_level"]),
            alert_message=str(data.get("alert_message", "")),
            alert_color=str(data.get("alert_color", "")),
            energy=float(data["energy"]),
            impact_radius=ImpactRadius(
                extreme=float(radius["extreme"]),
                strong=float(radius["strong"]),
                moderate=float(radius["moderate"]),
                felt=float(radius["felt"]),
            ),
            is_earthquake=bool(data["is_earthquake"]),
            location=data.get("location"),
        )


@dataclass(frozen=True)
class Alert:
    device_id: str
    magnitude: float
    timestamp: str
    location: str
    message: str
    alert_level: str = "warning"

    def to_dict(self) -> dict:
        return {
            "type": "earthquake_alert",
            "alert_level": self.alert_level,
            "device_id": self.device_id,
            "magnitude": self.magnitude,
            "timestamp": self.timestamp,
            "location": self.location,
            "message": self.message,
        }


@dataclass
class DeviceRecord:
    """Mutable per-device state. Outlives the connections bound to it."""
    device_id: str
    history: deque[EnrichedRecord]
    location: str | None = None
    status: DeviceStatus = DeviceStatus.CONNECTED
    connected_at: float = 0.0
    last_seen: float = 0.0
    battery: Any = None
    signal_strength: Any = None
    free_heap: Any = None

    @property
    def last_record(self) -> EnrichedRecord | None:
        return self.history[-1] if self.history else None

    def to_dict(self) -> dict:
        last = self.last_record
        return {
            "device_id": self.device_id,
            "location": self.location,
            "status": self.status.value,
            "connected_at": iso_timestamp(self.connected_at),
            "last_seen": iso_timestamp(self.last_seen),
            "battery": self.battery,
            "signal_strength": self.signal_strength,
            "free_heap": self.free_heap,
            "history_size": len(self.history),
            "last_data": last.to_dict() if last is not None else None,
        }


@dataclass(eq=False)
class Connection:
    """One live duplex connection. Identity is the object itself."""
    id: str
    peer: Peer
    ip: str
    port: int
    connected_at: float
    last_seen: float
    role: ConnectionRole = ConnectionRole.UNCLASSIFIED
    client_type: str | None = None
    device_id: str | None = None
