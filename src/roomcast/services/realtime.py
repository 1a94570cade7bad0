"""Registry of live realtime channels.

The registry is identity-agnostic: every batch goes to every open channel and
clients filter by their own canonical keys. Delivery is best-effort. A channel
that misses a batch (closing, half-open, slow) recovers by reconnecting and
re-fetching history, never through retransmission.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any, Protocol

from starlette.websockets import WebSocketDisconnect, WebSocketState

logger = logging.getLogger(__name__)

EVENT_USERS_UPDATE = "users:update"


class Channel(Protocol):
    """Minimal surface of a push channel (satisfied by Starlette's WebSocket)."""

    client_state: WebSocketState
    application_state: WebSocketState

    async def send_text(self, data: str) -> None: ...


def _is_writable(channel: Channel) -> bool:
    return (
        channel.client_state == WebSocketState.CONNECTED
        and channel.application_state == WebSocketState.CONNECTED
    )


class SessionRegistry:
    """Tracks open channels and pushes serialized packets to them."""

    def __init__(self) -> None:
        self._channels: dict[int, Channel] = {}

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, channel: object) -> bool:
        return id(channel) in self._channels

    async def register(self, channel: Channel, roster: Sequence[dict[str, Any]]) -> None:
        """Add a channel and bootstrap it with the current user roster."""
        self._channels[id(channel)] = channel
        logger.info("Realtime channel opened (%d connected)", len(self._channels))
        packet = json.dumps({"event": EVENT_USERS_UPDATE, "payload": {"users": list(roster)}})
        await self._send(channel, packet)

    def unregister(self, channel: Channel) -> None:
        """Forget a channel; unknown channels are ignored."""
        if self._channels.pop(id(channel), None) is not None:
            logger.info("Realtime channel closed (%d connected)", len(self._channels))

    async def deliver(self, packet: str) -> int:
        """Push a packet to every writable channel.

        Returns:
            The number of channels the packet was written to.
        """
        delivered = 0
        for channel in list(self._channels.values()):
            if await self._send(channel, packet):
                delivered += 1
        return delivered

    async def _send(self, channel: Channel, packet: str) -> bool:
        if not _is_writable(channel):
            return False
        try:
            await channel.send_text(packet)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            logger.debug("Skipping realtime channel mid-close: %s", exc)
            return False
        return True


class _SessionRegistrySingleton:
    """Singleton wrapper for SessionRegistry."""

    _instance: SessionRegistry | None = None

    @classmethod
    def get_instance(cls) -> SessionRegistry:
        if cls._instance is None:
            cls._instance = SessionRegistry()
        return cls._instance


def get_session_registry() -> SessionRegistry:
    """Return the process-wide session registry."""
    return _SessionRegistrySingleton.get_instance()
