"""Reconnecting consumer of the realtime push channel.

The push channel is best-effort. Anything missed while disconnected is
recovered by re-fetching history, which the ``on_resync`` callback does after
every reconnect.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp
import httpx

from .api import ChatApiError

logger = logging.getLogger(__name__)

RECONNECT_DELAY_SECONDS = 1.2

PacketHandler = Callable[[str], Any]
ResyncHandler = Callable[[], Awaitable[Any]]

# Failures raised by user callbacks that must not end the receive loop.
CALLBACK_ERRORS: tuple[type[BaseException], ...] = (
    httpx.HTTPError,
    ChatApiError,
    OSError,
    TimeoutError,
    ValueError,
    TypeError,
    KeyError,
    AttributeError,
)


class ChatStream:
    """Keeps a websocket open, feeding every text frame to ``on_packet``."""

    def __init__(
        self,
        url: str,
        on_packet: PacketHandler,
        on_resync: ResyncHandler | None = None,
        retry_seconds: float = RECONNECT_DELAY_SECONDS,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.url = url
        self.on_packet = on_packet
        self.on_resync = on_resync
        self.retry_seconds = retry_seconds
        self.connections = 0
        self._session = session
        self._owns_session = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background receive loop."""
        if self.running:
            return
        if self._session is None:
            self._session = aiohttp.ClientSession()
        self._stopping.clear()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the loop and close the socket."""
        if self._task is None:
            return

        self._stopping.set()
        if self._ws is not None:
            await self._ws.close()
        else:
            # Still connecting or waiting to retry.
            self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await self._consume()
            except (aiohttp.ClientError, OSError, TimeoutError) as exc:
                logger.warning("Realtime connection to %s failed: %s", self.url, exc)

            if self._stopping.is_set():
                break
            try:
                await asyncio.wait_for(self._stopping.wait(), self.retry_seconds)
            except TimeoutError:
                continue

    async def _consume(self) -> None:
        if self._session is None:
            raise RuntimeError("ChatStream is not started")
        self._ws = await self._session.ws_connect(self.url)
        try:
            self.connections += 1
            if self.connections > 1 and self.on_resync is not None:
                logger.info("Reconnected to %s, resyncing history", self.url)
                await self._resync()

            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._dispatch(msg.data)
                elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                    break
        finally:
            ws, self._ws = self._ws, None
            await ws.close()

    async def _resync(self) -> None:
        try:
            await self.on_resync()
        except CALLBACK_ERRORS as exc:
            logger.warning("History resync after reconnect failed: %s", exc)

    async def _dispatch(self, data: str) -> None:
        try:
            result = self.on_packet(data)
            if inspect.isawaitable(result):
                await result
        except CALLBACK_ERRORS as exc:
            logger.error("Dropping realtime frame the handler rejected: %s", exc, exc_info=True)
