"""Tracks which connection is the device and which are viewers."""

import logging
from typing import Dict, List, Optional

from macrelay.models.connection import Connection, Role

logger = logging.getLogger(__name__)


class SessionDirectory:
    """Owns the connection table and the single device slot."""

    def __init__(self):
        self.connections: Dict[str, Connection] = {}
        self._device_id: Optional[str] = None

    def open(self, connection_id: str) -> Connection:
        """Register a freshly connected, not yet identified endpoint."""
        connection = Connection(connection_id)
        self.connections[connection_id] = connection
        return connection

    def identify(self, connection_id: str, role: Role) -> Optional[str]:
        """
        Assign a role to a connection.

        A device claim always wins: any previously bound device connection is
        demoted to unclassified and stops receiving device traffic.

        Args:
            connection_id: ID of the identifying connection
            role: Role being claimed

        Returns:
            ID of the device connection that was replaced, if any
        """
        connection = self.connections.get(connection_id)
        if connection is None:
            connection = self.open(connection_id)

        replaced = None
        if role is Role.DEVICE:
            if self._device_id is not None and self._device_id != connection_id:
                replaced = self._device_id
                previous = self.connections.get(replaced)
                if previous is not None:
                    previous.role = Role.UNCLASSIFIED
                logger.info(f"Device claim by {connection_id} replaces {replaced}")
            self._device_id = connection_id
        elif connection_id == self._device_id:
            # The device re-identified as a viewer and gives up the slot.
            self._device_id = None

        connection.role = role
        return replaced

    def disconnect(self, connection_id: str) -> bool:
        """
        Forget a connection.

        Returns:
            True if the connection was the bound device
        """
        self.connections.pop(connection_id, None)
        if connection_id == self._device_id:
            self._device_id = None
            return True
        return False

    def is_device_bound(self) -> bool:
        return self._device_id is not None

    def current_device_id(self) -> Optional[str]:
        return self._device_id

    def viewer_ids(self) -> List[str]:
        return [c.id for c in self.connections.values() if c.is_viewer]

    def connection_ids(self) -> List[str]:
        return list(self.connections)

    def identified_ids(self) -> List[str]:
        """IDs of every connection that has claimed a role."""
        return [c.id for c in self.connections.values() if c.role is not Role.UNCLASSIFIED]
