# src/roomcast/api/v1/endpoints/realtime.py
"""Websocket push channel."""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket

from roomcast.services.users import UserDirectory

from ..dependencies import RegistryDep, SessionFactoryDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def realtime_channel(
    websocket: WebSocket,
    registry: RegistryDep,
    session_factory: SessionFactoryDep,
) -> None:
    """Push roster and message batches to one connected client.

    Inbound frames carry no meaning; reading them only keeps the loop alive
    until the peer disconnects.
    """
    await websocket.accept()
    with session_factory() as db:
        roster = UserDirectory(db).list_users()

    await registry.register(websocket, roster)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        registry.unregister(websocket)
        logger.debug("Realtime client disconnected")
