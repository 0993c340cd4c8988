"""Unit tests for the command queue and its drain."""

import asyncio

import pytest

from macrelay.core.command_queue import DEFAULT_DRAIN_INTERVAL, CommandQueue
from macrelay.models.events import Channel


class DrainRecorder:
    def __init__(self):
        self.delivered = []
        self.progress = []
        self.cleared = 0

    async def deliver(self, command):
        self.delivered.append(command.payload)

    async def on_progress(self, remaining):
        self.progress.append(remaining)

    async def on_cleared(self):
        self.cleared += 1


def fill(queue, *payloads):
    for payload in payloads:
        queue.enqueue(Channel.COMMAND, payload)


def test_enqueue_returns_length():
    queue = CommandQueue()
    assert queue.enqueue(Channel.COMMAND, "a") == 1
    assert queue.enqueue(Channel.COMMAND, "b") == 2
    assert queue.length() == 2
    assert len(queue) == 2
    assert [c.sequence for c in queue.pending()] == [1, 2]
    assert queue.interval == DEFAULT_DRAIN_INTERVAL


@pytest.mark.asyncio
async def test_drain_delivers_fifo():
    queue = CommandQueue(interval=0.01)
    fill(queue, "a", "b", "c")
    recorder = DrainRecorder()

    await queue.drain(recorder.deliver, recorder.on_progress, recorder.on_cleared, lambda: True)

    assert recorder.delivered == ["a", "b", "c"]
    assert recorder.progress == [2, 1, 0]
    assert recorder.cleared == 1
    assert queue.length() == 0
    assert not queue.is_draining


@pytest.mark.asyncio
async def test_drain_waits_between_deliveries():
    queue = CommandQueue(interval=0.05)
    fill(queue, "a", "b")
    recorder = DrainRecorder()

    task = queue.drain(recorder.deliver, recorder.on_progress, recorder.on_cleared, lambda: True)
    await asyncio.sleep(0)
    assert recorder.delivered == ["a"]
    assert queue.is_draining

    await task
    assert recorder.delivered == ["a", "b"]


@pytest.mark.asyncio
async def test_drain_stops_when_target_invalid():
    queue = CommandQueue(interval=0.01)
    fill(queue, "a", "b", "c")
    recorder = DrainRecorder()
    valid = {"ok": True}

    async def deliver(command):
        await recorder.deliver(command)
        valid["ok"] = False

    await queue.drain(deliver, recorder.on_progress, recorder.on_cleared, lambda: valid["ok"])

    assert recorder.delivered == ["a"]
    assert recorder.cleared == 0
    assert [c.payload for c in queue.pending()] == ["b", "c"]


@pytest.mark.asyncio
async def test_new_drain_cancels_previous():
    queue = CommandQueue(interval=0.05)
    fill(queue, "a", "b", "c")
    first, second = DrainRecorder(), DrainRecorder()

    old = queue.drain(first.deliver, first.on_progress, first.on_cleared, lambda: True)
    await asyncio.sleep(0)
    new = queue.drain(second.deliver, second.on_progress, second.on_cleared, lambda: True)
    await new

    assert old.cancelled()
    assert first.delivered == ["a"]
    assert second.delivered == ["b", "c"]
    assert first.cleared == 0
    assert second.cleared == 1


@pytest.mark.asyncio
async def test_cancel_drain():
    queue = CommandQueue(interval=0.05)
    assert queue.cancel_drain() is False
    fill(queue, "a", "b")
    recorder = DrainRecorder()

    queue.drain(recorder.deliver, recorder.on_progress, recorder.on_cleared, lambda: True)
    await asyncio.sleep(0)
    assert queue.cancel_drain() is True
    await asyncio.sleep(0.06)

    assert recorder.delivered == ["a"]
    assert queue.length() == 1
    assert queue.drain_task is None


@pytest.mark.asyncio
async def test_drain_of_empty_queue_reports_cleared():
    queue = CommandQueue(interval=0.01)
    recorder = DrainRecorder()

    await queue.drain(recorder.deliver, recorder.on_progress, recorder.on_cleared, lambda: True)

    assert recorder.delivered == []
    assert recorder.cleared == 1
