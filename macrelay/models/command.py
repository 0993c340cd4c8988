"""Model for commands withheld while no device is attached."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict

from macrelay.models.events import Channel


@dataclass(frozen=True)
class QueuedCommand:
    """A device-bound command waiting for the device to connect."""

    channel: Channel
    payload: Any
    sequence: int
    enqueued_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert command to dictionary representation."""
        return {
            'channel': self.channel.value,
            'payload': self.payload,
            'sequence': self.sequence,
            'enqueued_at': self.enqueued_at.isoformat()
        }

    def __repr__(self) -> str:
        return f"QueuedCommand(payload={self.payload!r}, sequence={self.sequence!r})"
