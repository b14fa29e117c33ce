from __future__ import annotations

from typing import Dict

from app.core.logging_config import get_logger
from app.models.connection import Connection

logger = get_logger(__name__)


class ConnectionRegistry:
    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}

    def register(self, connection_id: str, subject_id: str | None = None) -> Connection:
        connection = Connection(id=connection_id, subject_id=subject_id)
        self._connections[connection_id] = connection
        logger.debug(f"Registered connection {connection_id} for subject {subject_id}")
        return connection

    def get(self, connection_id: str | None) -> Connection | None:
        if connection_id is None:
            return None
        return self._connections.get(connection_id)

    def exists(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def subject_of(self, connection_id: str | None) -> str | None:
        connection = self.get(connection_id)
        return connection.subject_id if connection else None

    def rooms_of(self, connection_id: str) -> set[str]:
        connection = self._connections.get(connection_id)
        return set(connection.rooms) if connection else set()

    def attach(self, connection_id: str | None, room_id: str) -> None:
        connection = self.get(connection_id)
        if connection is not None:
            connection.rooms.add(room_id)

    def detach(self, connection_id: str | None, room_id: str) -> None:
        connection = self.get(connection_id)
        if connection is not None:
            connection.rooms.discard(room_id)

    def detach_room(self, room_id: str) -> None:
        for connection in self._connections.values():
            connection.rooms.discard(room_id)

    def remove(self, connection_id: str) -> Connection | None:
        return self._connections.pop(connection_id, None)

    def __len__(self) -> int:
        return len(self._connections)
