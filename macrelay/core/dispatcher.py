"""Routes relay events between the device, the viewers and the command queue."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol, Set

from macrelay.core.activity import ActivityLog
from macrelay.core.assistant import ExamAssistant, UnavailableAssistant
from macrelay.core.command_queue import CommandQueue
from macrelay.core.exceptions import AssistantError, ProtocolError, ValidationError
from macrelay.core.registry import ChannelRegistry
from macrelay.core.sessions import SessionDirectory
from macrelay.models.command import QueuedCommand
from macrelay.models.connection import Role
from macrelay.models.events import (
    Channel,
    Envelope,
    EventKind,
    error_payload,
    mac_status,
    queue_cleared,
    queue_status,
)

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_TAG = "macos"


class Transport(Protocol):
    async def send(self, connection_id: str, envelope: Envelope) -> None:
        ...


@dataclass
class RelayContext:
    """All mutable relay state, owned by a single dispatcher."""

    registry: ChannelRegistry = field(default_factory=ChannelRegistry)
    sessions: SessionDirectory = field(default_factory=SessionDirectory)
    queue: CommandQueue = field(default_factory=CommandQueue)


class RelayDispatcher:
    """
    Applies the routing rule for every inbound event.

    The dispatcher is the only writer of the registry, the session directory
    and the command queue. Sends go through ``transport``, which is expected
    to swallow per-connection failures.
    """

    def __init__(self, transport: Transport, context: Optional[RelayContext] = None,
                 device_tag: str = DEFAULT_DEVICE_TAG,
                 assistant: Optional[ExamAssistant] = None,
                 activity: Optional[ActivityLog] = None):
        self.transport = transport
        self.context = context or RelayContext()
        self.device_tag = device_tag
        self.assistant = assistant or UnavailableAssistant()
        self.activity = activity or ActivityLog()
        self._assistant_tasks: Set[asyncio.Task] = set()

    @property
    def registry(self) -> ChannelRegistry:
        return self.context.registry

    @property
    def sessions(self) -> SessionDirectory:
        return self.context.sessions

    @property
    def queue(self) -> CommandQueue:
        return self.context.queue

    def connect(self, connection_id: str) -> None:
        self.sessions.open(connection_id)

    async def disconnect(self, connection_id: str) -> None:
        if self.sessions.disconnect(connection_id):
            await self._device_lost(connection_id)

    async def handle_message(self, connection_id: str, message: str) -> None:
        """
        Parse and route one text frame from a connection.

        Rejected frames are reported back to the sender only.
        """
        try:
            envelope = Envelope.from_message(message)
            await self.dispatch(connection_id, envelope)
        except ProtocolError as e:
            logger.warning(f"Rejected message from {connection_id}: {str(e)}")
            self.activity.record("rejected", connection_id=connection_id, event=e.event, message=str(e))
            await self.transport.send(connection_id, Envelope(EventKind.ERROR, error_payload(str(e), e.event)))

    async def dispatch(self, connection_id: str, envelope: Envelope) -> None:
        """
        Route a parsed event.

        Raises:
            ProtocolError: If the event is not one clients may send
            ValidationError: If a numeric payload cannot be parsed
        """
        data = envelope.data
        match envelope.kind:
            case EventKind.IDENTIFY:
                if data == self.device_tag:
                    await self._identify_device(connection_id)
                else:
                    await self._identify_viewer(connection_id)
            case EventKind.SCREEN_DATA:
                await self._broadcast(self.sessions.viewer_ids(), envelope, exclude=connection_id)
            case EventKind.CLIPBOARD:
                self.registry.set(Channel.CLIPBOARD, data)
                await self._broadcast(self.sessions.identified_ids(), envelope, exclude=connection_id)
            case EventKind.WEB_SOURCE:
                self.registry.set(Channel.MARKUP, data)
                await self._broadcast(self.sessions.identified_ids(), Envelope(EventKind.RENDER_HTML, data))
            case EventKind.WORD_TO_MAC:
                await self._route_command(data)
            case EventKind.QUALITY:
                await self._route_control(Channel.QUALITY, envelope)
            case EventKind.FRAME_RATE:
                await self._route_control(Channel.FRAME_RATE, envelope)
            case EventKind.EMOJI:
                self.registry.set(Channel.EMOJI, data)
                await self._broadcast(self.sessions.identified_ids(), envelope)
            case EventKind.ASSISTANT_REQUEST:
                self._start_assistant(connection_id, data)
            case EventKind.RENDER_HTML | EventKind.STATUS | EventKind.ASSISTANT_STATUS \
                    | EventKind.ASSISTANT_RESULT | EventKind.ERROR:
                raise ProtocolError(f"Event {envelope.kind.value!r} cannot be sent by clients",
                                    event=envelope.kind.value)

    async def _identify_device(self, connection_id: str) -> None:
        was_device = self.sessions.current_device_id() == connection_id
        replaced = self.sessions.identify(connection_id, Role.DEVICE)
        logger.info(f"Device identified: {connection_id}")
        self.activity.record("device_connected", connection_id=connection_id, replaced=replaced)
        await self._broadcast_status(mac_status(True))

        # A pending queue already ends with the last command; the drain delivers it.
        if not len(self.queue):
            await self.transport.send(connection_id, Envelope(EventKind.WORD_TO_MAC, self.registry.get(Channel.COMMAND)))
        await self.transport.send(connection_id, Envelope(EventKind.QUALITY, self.registry.get(Channel.QUALITY)))
        await self.transport.send(connection_id, Envelope(EventKind.FRAME_RATE, self.registry.get(Channel.FRAME_RATE)))

        if was_device and self.queue.is_draining:
            # Same device re-identifying keeps the running drain and its pacing.
            return
        if len(self.queue):
            self._start_drain(connection_id)
        else:
            self.queue.cancel_drain()

    async def _identify_viewer(self, connection_id: str) -> None:
        was_device = self.sessions.current_device_id() == connection_id
        self.sessions.identify(connection_id, Role.VIEWER)
        logger.info(f"Viewer identified: {connection_id}")
        if was_device:
            await self._device_lost(connection_id, exclude=connection_id)

        snapshot = self.registry.get_all()
        hydration = [
            Envelope(EventKind.CLIPBOARD, snapshot[Channel.CLIPBOARD]),
            Envelope(EventKind.EMOJI, snapshot[Channel.EMOJI]),
            Envelope(EventKind.RENDER_HTML, snapshot[Channel.MARKUP]),
            Envelope(EventKind.QUALITY, snapshot[Channel.QUALITY]),
            Envelope(EventKind.FRAME_RATE, snapshot[Channel.FRAME_RATE]),
            Envelope(EventKind.STATUS, mac_status(self.sessions.is_device_bound())),
        ]
        if len(self.queue):
            hydration.append(Envelope(EventKind.STATUS, queue_status(len(self.queue))))

        for envelope in hydration:
            await self.transport.send(connection_id, envelope)

    async def _device_lost(self, connection_id: str, exclude: Optional[str] = None) -> None:
        self.queue.cancel_drain()
        logger.info(f"Device disconnected: {connection_id}")
        self.activity.record("device_disconnected", connection_id=connection_id, queued=len(self.queue))
        await self._broadcast_status(mac_status(False), exclude=exclude)

    async def _route_command(self, command: str) -> None:
        self.registry.set(Channel.COMMAND, command)
        device_id = self.sessions.current_device_id()

        # Commands wait behind anything still queued so delivery stays FIFO.
        if device_id is None or len(self.queue):
            length = self.queue.enqueue(Channel.COMMAND, command)
            logger.info(f"Queued command {command!r} ({length} pending)")
            self.activity.record("command_queued", payload=command, count=length)
            await self._broadcast_status(queue_status(length))
            if device_id is not None and not self.queue.is_draining:
                self._start_drain(device_id)
            return

        await self.transport.send(device_id, Envelope(EventKind.WORD_TO_MAC, command))

    async def _route_control(self, channel: Channel, envelope: Envelope) -> None:
        try:
            value = self.registry.set(channel, envelope.data)
        except ValidationError as e:
            e.event = envelope.kind.value
            raise

        device_id = self.sessions.current_device_id()
        if device_id is None:
            logger.debug(f"No device bound, dropping {envelope.kind.value}={value}")
            return
        await self.transport.send(device_id, Envelope(envelope.kind, value))

    def _start_drain(self, device_id: str) -> asyncio.Task:
        async def deliver(command: QueuedCommand) -> None:
            await self.transport.send(device_id, Envelope(EventKind.WORD_TO_MAC, command.payload))
            self.activity.record("command_delivered", payload=command.payload, sequence=command.sequence)

        async def progress(remaining: int) -> None:
            await self._broadcast_status(queue_status(remaining))

        async def cleared() -> None:
            self.activity.record("queue_cleared")
            await self._broadcast_status(queue_cleared())

        logger.info(f"Draining {len(self.queue)} queued command(s) to {device_id}")
        return self.queue.drain(
            deliver, progress, cleared,
            still_valid=lambda: self.sessions.current_device_id() == device_id,
        )

    def _start_assistant(self, connection_id: str, request: Any) -> None:
        task = asyncio.create_task(self._run_assistant(connection_id, request))
        self._assistant_tasks.add(task)
        task.add_done_callback(self._assistant_tasks.discard)

    async def _run_assistant(self, connection_id: str, request: Any) -> None:
        async def report_status(text: str) -> None:
            await self.transport.send(connection_id, Envelope(EventKind.ASSISTANT_STATUS, text))

        try:
            result = await self.assistant.solve(request, report_status)
        except AssistantError as e:
            payload = {"success": False, "error": str(e)}
        except Exception as e:
            logger.error(f"Assistant failed for {connection_id}: {str(e)}")
            payload = {"success": False, "error": str(e)}
        else:
            payload = self._assistant_payload(connection_id, result)

        await self.transport.send(connection_id, Envelope(EventKind.ASSISTANT_RESULT, payload))

    @staticmethod
    def _assistant_payload(connection_id: str, result: Any) -> dict:
        # The result crosses the wire as JSON, so it must serialize here.
        try:
            json.dumps(result)
        except (TypeError, ValueError) as e:
            logger.warning(f"Assistant returned malformed content for {connection_id}: {str(e)}")
            return {"success": False, "error": f"malformed assistant result: {str(e)}"}
        return {"success": True, "result": result}

    async def _broadcast(self, targets: Iterable[str], envelope: Envelope, exclude: Optional[str] = None) -> None:
        for target in list(targets):
            if target != exclude:
                await self.transport.send(target, envelope)

    async def _broadcast_status(self, status: dict, exclude: Optional[str] = None) -> None:
        await self._broadcast(self.sessions.viewer_ids(), Envelope(EventKind.STATUS, status), exclude=exclude)

    async def shutdown(self) -> None:
        """Stop the drain and any assistant requests still running."""
        self.queue.cancel_drain()
        tasks = list(self._assistant_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
