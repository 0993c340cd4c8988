"""Event models for messages exchanged over the relay."""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from macrelay.core.exceptions import ProtocolError


class EventKind(Enum):
    """Named events carried on a relay connection."""
    IDENTIFY = "identify"
    SCREEN_DATA = "screenData"
    CLIPBOARD = "clipboardData"
    WEB_SOURCE = "webSourceCode"
    RENDER_HTML = "renderHTML"
    WORD_TO_MAC = "wordToMac"
    QUALITY = "qualityChange"
    FRAME_RATE = "frameRateChange"
    EMOJI = "emojiToWeb"
    STATUS = "statusUpdate"
    ASSISTANT_REQUEST = "geminiRequest"
    ASSISTANT_STATUS = "geminiStatus"
    ASSISTANT_RESULT = "geminiResult"
    ERROR = "relayError"

    @property
    def inbound(self) -> bool:
        """Whether clients may send this event to the server."""
        return self in INBOUND_EVENTS


INBOUND_EVENTS = frozenset({
    EventKind.IDENTIFY,
    EventKind.SCREEN_DATA,
    EventKind.CLIPBOARD,
    EventKind.WEB_SOURCE,
    EventKind.WORD_TO_MAC,
    EventKind.QUALITY,
    EventKind.FRAME_RATE,
    EventKind.EMOJI,
    EventKind.ASSISTANT_REQUEST,
})

# Payloads that must arrive as strings; numeric channels are parsed separately.
_STRING_PAYLOADS = frozenset({
    EventKind.IDENTIFY,
    EventKind.SCREEN_DATA,
    EventKind.CLIPBOARD,
    EventKind.WEB_SOURCE,
    EventKind.WORD_TO_MAC,
    EventKind.EMOJI,
})


class Channel(Enum):
    """Logical channels whose last value is remembered."""
    CLIPBOARD = "clipboard"
    EMOJI = "emoji"
    COMMAND = "command"
    QUALITY = "quality"
    FRAME_RATE = "frame_rate"
    MARKUP = "markup"


@dataclass(frozen=True)
class Envelope:
    """A single named event with its payload."""

    kind: EventKind
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert envelope to its wire dictionary."""
        return {"event": self.kind.value, "data": self.data}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_message(cls, message: str) -> "Envelope":
        """
        Parse an inbound text frame.

        Args:
            message: JSON text of the form {"event": ..., "data": ...}

        Returns:
            Parsed envelope

        Raises:
            ProtocolError: If the frame is malformed or names an event
                clients are not allowed to send
        """
        try:
            raw = json.loads(message)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Invalid JSON message: {str(e)}") from e

        if not isinstance(raw, dict):
            raise ProtocolError("Message must be a JSON object")

        name = raw.get("event")
        try:
            kind = EventKind(name)
        except ValueError:
            raise ProtocolError(f"Unknown event: {name!r}", event=name) from None

        if not kind.inbound:
            raise ProtocolError(f"Event {name!r} cannot be sent by clients", event=name)

        data = raw.get("data")
        if kind in _STRING_PAYLOADS and not isinstance(data, str):
            raise ProtocolError(f"Event {name!r} expects a string payload", event=name)

        return cls(kind, data)


def mac_status(connected: bool) -> Dict[str, Any]:
    """Device connection status payload."""
    return {"type": "mac", "status": "connected" if connected else "disconnected"}


def queue_status(count: int) -> Dict[str, Any]:
    """Queue depth status payload."""
    return {"type": "queue", "status": "queued", "count": count}


def queue_cleared() -> Dict[str, Any]:
    return {"type": "queue", "status": "cleared", "count": 0}


def error_payload(message: str, event: Optional[str] = None) -> Dict[str, Any]:
    return {"event": event, "message": message}
