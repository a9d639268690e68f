"""Transport interface (port) for one duplex connection."""

from __future__ import annotations

from typing import Protocol


class Peer(Protocol):
    """Port: the writable end of a device or dashboard connection."""

    @property
    def is_open(self) -> bool: ...

    async def send(self, text: str) -> None: ...

    async def ping(self) -> bool:
        """Request a liveness response.

        Returns True once the response has arrived, False when the peer did
        not answer in time or the transport cannot report it.
        """
        ...

    async def terminate(self) -> None: ...
