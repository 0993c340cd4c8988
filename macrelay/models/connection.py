"""Connection model for endpoints attached to the relay."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Role(Enum):
    """Role a connection holds after identifying itself."""
    UNCLASSIFIED = "unclassified"
    DEVICE = "device"
    VIEWER = "viewer"


@dataclass
class Connection:
    """Represents a connected endpoint and the role it has claimed."""

    id: str
    role: Role = Role.UNCLASSIFIED
    connected_at: datetime = field(default_factory=datetime.now)

    @property
    def is_device(self) -> bool:
        return self.role is Role.DEVICE

    @property
    def is_viewer(self) -> bool:
        return self.role is Role.VIEWER

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r}, role={self.role.value!r})"
