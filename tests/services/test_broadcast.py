"""Tests for coalesced realtime broadcasting."""

import asyncio
import json

import pytest
from starlette.websockets import WebSocketState

from roomcast.services.broadcast import (
    EVENT_MESSAGE_DELETE,
    EVENT_MESSAGE_NEW,
    BroadcastCoalescer,
)
from roomcast.services.realtime import SessionRegistry


def _events(packet: str) -> list[dict]:
    return json.loads(packet)["events"]


def test_publish_arms_a_single_timer(coalescer, scheduler) -> None:
    for index in range(5):
        coalescer.publish(EVENT_MESSAGE_NEW, {"n": index})

    assert len(scheduler.calls) == 1
    assert scheduler.calls[0][0] == pytest.approx(0.025)
    assert coalescer.pending == 5
    assert coalescer.flush_scheduled is True


@pytest.mark.asyncio
async def test_one_window_produces_one_ordered_batch(coalescer, scheduler, sink) -> None:
    for index in range(10):
        coalescer.publish(EVENT_MESSAGE_NEW, {"n": index})
    coalescer.publish(EVENT_MESSAGE_DELETE, {"id": 3})

    scheduler.fire()
    await coalescer.close()

    assert len(sink.packets) == 1
    events = _events(sink.packets[0])
    assert [e["payload"].get("n") for e in events[:10]] == list(range(10))
    assert events[-1] == {"event": "message:delete", "payload": {"id": 3}}
    assert coalescer.pending == 0
    assert coalescer.flush_scheduled is False


@pytest.mark.asyncio
async def test_next_window_rearms_timer(coalescer, scheduler, sink) -> None:
    coalescer.publish(EVENT_MESSAGE_NEW, {"n": 1})
    scheduler.fire()
    coalescer.publish(EVENT_MESSAGE_NEW, {"n": 2})
    assert len(scheduler.calls) == 1
    scheduler.fire()
    await coalescer.close()

    assert [_events(p)[0]["payload"]["n"] for p in sink.packets] == [1, 2]


def test_drain_of_empty_queue_is_noop(coalescer) -> None:
    assert coalescer.drain() is None


@pytest.mark.asyncio
async def test_flush_without_events_sends_nothing(coalescer, sink) -> None:
    await coalescer.flush()
    assert sink.packets == []


@pytest.mark.asyncio
async def test_close_delivers_pending_events(coalescer, sink) -> None:
    coalescer.publish(EVENT_MESSAGE_NEW, {"n": 1})
    await coalescer.close()
    assert len(sink.packets) == 1


@pytest.mark.asyncio
async def test_failed_delivery_is_logged_not_raised(scheduler, mocker, caplog) -> None:
    sink = mocker.Mock()
    sink.deliver = mocker.AsyncMock(side_effect=RuntimeError("boom"))
    coalescer = BroadcastCoalescer(sink, delay_seconds=0.0, scheduler=scheduler)

    coalescer.publish(EVENT_MESSAGE_NEW, {"n": 1})
    scheduler.fire()
    await coalescer.close()

    sink.deliver.assert_awaited_once()
    assert "delivery failed" in caplog.text


@pytest.mark.asyncio
async def test_defaults_to_running_loop(sink) -> None:
    coalescer = BroadcastCoalescer(sink, delay_seconds=0.0)
    coalescer.publish(EVENT_MESSAGE_NEW, {"n": 1})
    coalescer.publish(EVENT_MESSAGE_NEW, {"n": 2})

    for _ in range(5):
        await asyncio.sleep(0.01)
        if sink.packets:
            break
    await coalescer.close()

    assert len(sink.packets) == 1
    assert len(_events(sink.packets[0])) == 2


class StallingChannel:
    """Channel whose first push blocks longer than a flush window."""

    def __init__(self, name: str, log: list) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.name = name
        self.log = log
        self.stall_seconds = 0.0

    async def send_text(self, data: str) -> None:
        if self.stall_seconds:
            stall, self.stall_seconds = self.stall_seconds, 0.0
            await asyncio.sleep(stall)
        packet = json.loads(data)
        if "events" in packet:
            self.log.append((self.name, [e["payload"]["n"] for e in packet["events"]]))


@pytest.mark.asyncio
async def test_slow_channel_does_not_reorder_windows() -> None:
    log: list = []
    registry = SessionRegistry()
    stalled = StallingChannel("stalled", log)
    await registry.register(stalled, [])
    await registry.register(StallingChannel("other", log), [])
    log.clear()
    stalled.stall_seconds = 0.1
    coalescer = BroadcastCoalescer(registry, delay_seconds=0.01)

    coalescer.publish(EVENT_MESSAGE_NEW, {"n": 1})
    await asyncio.sleep(0.03)
    coalescer.publish(EVENT_MESSAGE_NEW, {"n": 2})
    await asyncio.sleep(0.03)
    await coalescer.close()

    for name in ("stalled", "other"):
        assert [batch for who, batch in log if who == name] == [[1], [2]]
    assert log[0] == ("stalled", [1])


@pytest.mark.asyncio
async def test_close_waits_for_in_flight_batch_before_final_flush(scheduler, sink) -> None:
    coalescer = BroadcastCoalescer(sink, delay_seconds=0.025, scheduler=scheduler)
    coalescer.publish(EVENT_MESSAGE_NEW, {"n": 1})
    scheduler.fire()
    coalescer.publish(EVENT_MESSAGE_NEW, {"n": 2})

    await coalescer.close()

    assert [_events(p)[0]["payload"]["n"] for p in sink.packets] == [1, 2]
