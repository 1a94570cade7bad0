"""Coalesced realtime broadcasting.

Bursts of writes should not each trigger a network write to every connected
channel. Events are queued and flushed together after a short window, turning
O(channels x events) sends into O(channels) sends per window.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from roomcast.core.settings import settings
from roomcast.services.realtime import EVENT_USERS_UPDATE, get_session_registry

__all__ = [
    "BroadcastCoalescer",
    "BroadcastEvent",
    "EVENT_MESSAGE_DELETE",
    "EVENT_MESSAGE_NEW",
    "EVENT_USERS_UPDATE",
    "get_coalescer",
]

logger = logging.getLogger(__name__)

EVENT_MESSAGE_NEW = "message:new"
EVENT_MESSAGE_DELETE = "message:delete"


class BatchSink(Protocol):
    """Receiver of serialized batches (the session registry in production)."""

    async def deliver(self, packet: str) -> Any: ...


class Scheduler(Protocol):
    """Timer source; ``asyncio`` event loops satisfy it."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Any: ...


@dataclass(frozen=True)
class BroadcastEvent:
    """A single queued realtime event."""

    event: str
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.event, "payload": self.payload}


class BroadcastCoalescer:
    """Single-owner queue of pending events with one scheduled flush.

    ``publish`` appends under a lock and arms the flush timer only when none
    is armed, so every event raised inside one window ends up in the same
    batch, in publish order. Batches reach the sink one at a time: a flush
    waits for the previous fan-out to finish, so a slow channel delays later
    windows instead of being overtaken by them.
    """

    def __init__(
        self,
        sink: BatchSink,
        delay_seconds: float | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._sink = sink
        self._delay = settings.ws_flush_seconds if delay_seconds is None else delay_seconds
        self._scheduler = scheduler
        self._pending: list[BroadcastEvent] = []
        self._flush_scheduled = False
        self._lock = threading.Lock()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._delivery_lock = asyncio.Lock()

    @property
    def pending(self) -> int:
        """Number of events waiting for the next flush."""
        with self._lock:
            return len(self._pending)

    @property
    def flush_scheduled(self) -> bool:
        with self._lock:
            return self._flush_scheduled

    def publish(self, event: str, payload: dict[str, Any]) -> None:
        """Queue an event and arm the flush timer if it is not armed yet."""
        scheduler = self._resolve_scheduler()
        with self._lock:
            self._pending.append(BroadcastEvent(event=event, payload=payload))
            if self._flush_scheduled:
                return
            self._flush_scheduled = True

        scheduler.call_later(self._delay, self._on_timer)

    def drain(self) -> str | None:
        """Atomically take every pending event and serialize them once.

        Returns:
            The serialized batch, or ``None`` when nothing was pending.
        """
        with self._lock:
            batch, self._pending = self._pending, []
            self._flush_scheduled = False

        if not batch:
            return None
        logger.debug("Flushing %d realtime event(s)", len(batch))
        return json.dumps({"events": [item.to_dict() for item in batch]})

    async def flush(self) -> None:
        """Drain the queue and hand the batch to the sink; no-op when empty."""
        packet = self.drain()
        if packet is not None:
            await self._deliver(packet)

    async def close(self) -> None:
        """Deliver anything still pending and wait for in-flight flushes."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.flush()

    def _on_timer(self) -> None:
        packet = self.drain()
        if packet is None:
            return
        task = asyncio.ensure_future(self._deliver(packet))
        self._tasks.add(task)
        task.add_done_callback(self._on_delivered)

    async def _deliver(self, packet: str) -> None:
        # Tasks acquire in creation order, which is drain order.
        async with self._delivery_lock:
            await self._sink.deliver(packet)

    def _on_delivered(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Realtime batch delivery failed: %s", task.exception())

    def _resolve_scheduler(self) -> Scheduler:
        if self._scheduler is not None:
            return self._scheduler
        return asyncio.get_running_loop()


class _CoalescerSingleton:
    """Singleton wrapper for BroadcastCoalescer."""

    _instance: BroadcastCoalescer | None = None

    @classmethod
    def get_instance(cls) -> BroadcastCoalescer:
        if cls._instance is None:
            cls._instance = BroadcastCoalescer(get_session_registry())
        return cls._instance


def get_coalescer() -> BroadcastCoalescer:
    """Return the process-wide broadcast coalescer."""
    return _CoalescerSingleton.get_instance()
