"""Device directory: one long-lived record per device id."""

from __future__ import annotations

from collections import deque
from typing import Any

from quakehub.core.models import DeviceRecord, DeviceStatus, EnrichedRecord

DEFAULT_HISTORY_SIZE = 100


class DeviceDirectory:
    """Device records keyed by the device-supplied id.

    Records are created on first registration and kept for the lifetime of
    the process, so a device that reconnects finds its history intact.
    """

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        self._history_size = history_size
        self._devices: dict[str, DeviceRecord] = {}

    def upsert(self, device_id: str, location: str | None, now: float) -> tuple[DeviceRecord, bool]:
        """Create or reconnect a device. Returns ``(record, created)``."""
        device = self._devices.get(device_id)
        if device is None:
            device = DeviceRecord(
                device_id=device_id,
                history=deque(maxlen=self._history_size),
                location=location,
                status=DeviceStatus.CONNECTED,
                connected_at=now,
                last_seen=now,
            )
            self._devices[device_id] = device
            return device, True

        device.status = DeviceStatus.CONNECTED
        device.last_seen = now
        if location is not None:
            device.location = location
        return device, False

    def append_history(self, device_id: str, record: EnrichedRecord) -> bool:
        device = self._devices.get(device_id)
        if device is None:
            return False
        device.history.append(record)
        return True

    def touch(self, device_id: str, now: float) -> bool:
        device = self._devices.get(device_id)
        if device is None:
            return False
        device.status = DeviceStatus.CONNECTED
        device.last_seen = now
        return True

    def mark_disconnected(self, device_id: str, now: float) -> bool:
        device = self._devices.get(device_id)
        if device is None:
            return False
        device.status = DeviceStatus.DISCONNECTED
        device.last_seen = now
        return True

    def update_telemetry(
        self,
        device_id: str,
        battery: Any,
        signal_strength: Any,
        free_heap: Any,
        now: float,
    ) -> bool:
        """Overwrite all telemetry fields; missing values are stored as None."""
        device = self._devices.get(device_id)
        if device is None:
            return False
        device.battery = battery
        device.signal_strength = signal_strength
        device.free_heap = free_heap
        device.status = DeviceStatus.CONNECTED
        device.last_seen = now
        return True

    def get(self, device_id: str) -> DeviceRecord | None:
        return self._devices.get(device_id)

    def all(self) -> list[DeviceRecord]:
        return list(self._devices.values())

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def __len__(self) -> int:
        return len(self._devices)
