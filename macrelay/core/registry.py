"""Last-value store for relayed channels."""

import math
from typing import Any, Dict

from macrelay.models.events import Channel
from macrelay.core.exceptions import ValidationError

DEFAULT_VALUES: Dict[Channel, Any] = {
    Channel.CLIPBOARD: "Welcome to the shared clipboard!",
    Channel.EMOJI: "...",
    Channel.COMMAND: "Ready",
    Channel.QUALITY: 75,
    Channel.FRAME_RATE: 30,
    Channel.MARKUP: "",
}

NUMERIC_CHANNELS = frozenset({Channel.QUALITY, Channel.FRAME_RATE})


def parse_int(value: Any, channel: Channel) -> int:
    """
    Parse a numeric control value to an integer.

    Integers pass through, floats and numeric strings are truncated toward
    zero. Booleans, empty strings and non-finite numbers are rejected.

    Raises:
        ValidationError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise ValidationError(f"{channel.value} must be a number, got {value!r}")
    if isinstance(value, int):
        return value

    number = value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text, 10)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            raise ValidationError(f"{channel.value} must be a number, got {value!r}") from None

    if not isinstance(number, float) or not math.isfinite(number):
        raise ValidationError(f"{channel.value} must be a number, got {value!r}")
    return int(number)


class ChannelRegistry:
    """
    Remembers the most recent value of every channel.

    Values are overwritten, never merged, and live for the lifetime of the
    registry. Numeric channels are parsed before they are stored.
    """

    def __init__(self, initial: Dict[Channel, Any] | None = None):
        self._values: Dict[Channel, Any] = dict(DEFAULT_VALUES)
        if initial:
            for channel, value in initial.items():
                self.set(channel, value)

    def set(self, channel: Channel, value: Any) -> Any:
        """
        Overwrite the stored value for a channel.

        Returns:
            The value actually stored (the parsed integer for numeric channels)
        """
        if channel in NUMERIC_CHANNELS:
            value = parse_int(value, channel)
        self._values[channel] = value
        return value

    def get(self, channel: Channel) -> Any:
        return self._values[channel]

    def get_all(self) -> Dict[Channel, Any]:
        """Get a snapshot of every channel's current value."""
        return dict(self._values)

    def to_dict(self) -> Dict[str, Any]:
        return {channel.value: value for channel, value in self._values.items()}
