"""WebSocket connection manager for handling real-time communication."""

import asyncio
import logging
from typing import Dict, Optional

from fastapi import WebSocket

from macrelay.core.activity import ActivityLog
from macrelay.core.assistant import ExamAssistant
from macrelay.core.dispatcher import DEFAULT_DEVICE_TAG, RelayContext, RelayDispatcher
from macrelay.core.exceptions import ProtocolError
from macrelay.models.events import Envelope

logger = logging.getLogger(__name__)

OUTBOX_SIZE = 256


class WebSocketManager:
    """
    Manages WebSocket connections and delivers relay events to them.

    Every connection gets an outbox drained by its own writer task, so sends
    never block the dispatcher and events reach each socket in the order they
    were produced.
    """

    def __init__(self, context: Optional[RelayContext] = None,
                 device_tag: str = DEFAULT_DEVICE_TAG,
                 assistant: Optional[ExamAssistant] = None,
                 activity: Optional[ActivityLog] = None):
        self.connections: Dict[str, WebSocket] = {}
        self._outboxes: Dict[str, asyncio.Queue] = {}
        self._writers: Dict[str, asyncio.Task] = {}
        self.dispatcher = RelayDispatcher(
            self, context, device_tag=device_tag, assistant=assistant, activity=activity
        )

    async def connect(self, websocket: WebSocket, client_id: str) -> None:
        """
        Accept a new WebSocket connection and register it with the relay.

        Args:
            websocket: WebSocket connection
            client_id: Unique identifier for the connection

        Raises:
            ProtocolError: If the identifier is already in use
        """
        await websocket.accept()
        if client_id in self.connections:
            await websocket.close(code=1008)
            raise ProtocolError(f"Connection id {client_id!r} already in use")

        outbox: asyncio.Queue = asyncio.Queue(maxsize=OUTBOX_SIZE)
        self.connections[client_id] = websocket
        self._outboxes[client_id] = outbox
        self._writers[client_id] = asyncio.create_task(self._write(client_id, websocket, outbox))
        self.dispatcher.connect(client_id)
        logger.info(f"Client {client_id} connected")

    async def disconnect(self, client_id: str, websocket: Optional[WebSocket] = None) -> None:
        """
        Remove a connection and let the relay clean up after it.

        Args:
            client_id: ID of the connection to remove
            websocket: Only remove the entry if it still belongs to this socket
        """
        if websocket is not None and self.connections.get(client_id) is not websocket:
            return
        if self.connections.pop(client_id, None) is None:
            return

        self._outboxes.pop(client_id, None)
        writer = self._writers.pop(client_id, None)
        if writer is not None:
            writer.cancel()
        await self.dispatcher.disconnect(client_id)
        logger.info(f"Client {client_id} disconnected")

    async def handle_message(self, client_id: str, message: str) -> None:
        """Process an incoming text frame from a connection."""
        await self.dispatcher.handle_message(client_id, message)

    async def send(self, connection_id: str, envelope: Envelope) -> None:
        """Queue an event for a connection. Unknown or saturated connections drop it."""
        outbox = self._outboxes.get(connection_id)
        if outbox is None:
            logger.debug(f"Dropping {envelope.kind.value} for unknown connection {connection_id}")
            return
        try:
            outbox.put_nowait(envelope.to_json())
        except asyncio.QueueFull:
            logger.warning(f"Outbox full for {connection_id}, dropping {envelope.kind.value}")

    async def _write(self, client_id: str, websocket: WebSocket, outbox: asyncio.Queue) -> None:
        while True:
            message = await outbox.get()
            try:
                await websocket.send_text(message)
            except Exception as e:
                logger.error(f"Failed to send message to {client_id}: {str(e)}")
                # Stop accepting events for a socket that can no longer be written.
                if self._outboxes.get(client_id) is outbox:
                    del self._outboxes[client_id]
                return

    async def close(self) -> None:
        """Stop relay background work and all writer tasks."""
        await self.dispatcher.shutdown()
        writers = list(self._writers.values())
        for writer in writers:
            writer.cancel()
        await asyncio.gather(*writers, return_exceptions=True)
