"""Hub statistics and instantaneous throughput.

In-memory counters plus a samples-per-second meter that resets once per
second. No framework dependencies.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable


class HubStats:
    """Thread-safe hub counters.

    ``pps`` is the number of samples accepted during the last completed
    one-second window: the counter is compared against the window start on
    every accepted sample and, once a second has passed, its value becomes
    the published rate and it starts over.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._started_at = time.time()

        # Counters
        self.messages_received: int = 0
        self.malformed_messages: int = 0
        self.unknown_messages: int = 0
        self.samples_accepted: int = 0
        self.samples_rejected: int = 0
        self.heartbeats_received: int = 0
        self.alerts_triggered: int = 0
        self.connections_opened: int = 0
        self.connections_closed: int = 0
        self.connections_evicted: int = 0
        self.send_failures: int = 0

        # Throughput window
        self._window_count = 0
        self._window_started = clock()
        self._pps = 0

    def record_message(self) -> None:
        with self._lock:
            self.messages_received += 1

    def record_malformed(self) -> None:
        with self._lock:
            self.malformed_messages += 1

    def record_unknown(self) -> None:
        with self._lock:
            self.unknown_messages += 1

    def record_sample(self) -> None:
        """Count an accepted sample and roll the throughput window if due."""
        now = self._clock()
        with self._lock:
            self.samples_accepted += 1
            self._window_count += 1
            if now - self._window_started >= 1.0:
                self._pps = self._window_count
                self._window_count = 0
                self._window_started = now

    def record_rejected(self, count: int = 1) -> None:
        with self._lock:
            self.samples_rejected += count

    def record_heartbeat(self) -> None:
        with self._lock:
            self.heartbeats_received += 1

    def record_alert(self) -> None:
        with self._lock:
            self.alerts_triggered += 1

    def record_connection_opened(self) -> None:
        with self._lock:
            self.connections_opened += 1

    def record_connection_closed(self, *, evicted: bool = False) -> None:
        with self._lock:
            self.connections_closed += 1
            if evicted:
                self.connections_evicted += 1

    def record_send_failure(self) -> None:
        with self._lock:
            self.send_failures += 1

    @property
    def pps(self) -> int:
        with self._lock:
            return self._pps

    @property
    def uptime_seconds(self) -> float:
        return round(time.time() - self._started_at, 1)

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of all stats."""
        with self._lock:
            return {
                "uptime_seconds": round(time.time() - self._started_at, 1),
                "messages_received": self.messages_received,
                "malformed_messages": self.malformed_messages,
                "unknown_messages": self.unknown_messages,
                "samples_accepted": self.samples_accepted,
                "samples_rejected": self.samples_rejected,
                "heartbeats_received": self.heartbeats_received,
                "alerts_triggered": self.alerts_triggered,
                "connections": {
                    "opened": self.connections_opened,
                    "closed": self.connections_closed,
                    "evicted": self.connections_evicted,
                },
                "send_failures": self.send_failures,
                "pps": self._pps,
            }
