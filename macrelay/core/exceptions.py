"""Custom exceptions for the relay."""


class RelayError(Exception):
    """Base exception for relay-related errors."""
    pass


class ProtocolError(RelayError):
    """Exception raised for malformed or unexpected client messages."""

    def __init__(self, message: str, event: str | None = None):
        super().__init__(message)
        self.event = event


class ValidationError(ProtocolError):
    """Exception raised when a payload fails value validation."""
    pass


class AssistantError(RelayError):
    """Exception raised when the assistant collaborator fails."""
    pass


class ConfigError(RelayError):
    """Exception raised for invalid configuration values."""
    pass
