"""Shared fixtures for relay tests."""

import pytest

from macrelay.core.command_queue import CommandQueue
from macrelay.core.dispatcher import RelayContext, RelayDispatcher


class RecordingTransport:
    """Transport double that remembers every event sent."""

    def __init__(self):
        self.sent = []

    async def send(self, connection_id, envelope):
        self.sent.append((connection_id, envelope.kind.value, envelope.data))

    def to(self, connection_id, event=None):
        """Payloads sent to a connection, optionally for one event only."""
        return [data for cid, name, data in self.sent
                if cid == connection_id and (event is None or name == event)]

    def events_to(self, connection_id):
        return [name for cid, name, _ in self.sent if cid == connection_id]

    def clear(self):
        self.sent.clear()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def dispatcher(transport):
    """Dispatcher with a short drain interval."""
    context = RelayContext(queue=CommandQueue(interval=0.01))
    return RelayDispatcher(transport, context)
