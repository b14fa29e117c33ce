from __future__ import annotations

import random
import string
from typing import Dict

from app.core.errors import RoomNotFound
from app.core.logging_config import get_logger
from app.models.room import Member, Room, RoomKind, RoomStatus

logger = get_logger(__name__)

ROOM_CODE_LENGTH = 9
MAX_CODE_ATTEMPTS = 32


def _generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(random.choice(alphabet) for _ in range(length))


class RoomIdExhausted(RuntimeError):
    pass


class RoomRegistry:
    """Owns every live room; callers mutate the returned records in place."""

    def __init__(self) -> None:
        self._rooms: Dict[str, Room] = {}

    def create(
        self,
        kind: RoomKind,
        host: Member,
        host_connection_id: str | None = None,
        room_id: str | None = None,
        title: str | None = None,
        description: str | None = None,
        status: RoomStatus = RoomStatus.ACTIVE,
    ) -> Room:
        room_id = room_id or self._unique_room_id(kind)
        room = Room(
            id=room_id,
            kind=kind,
            host=host,
            host_connection_id=host_connection_id,
            title=title or "Untitled",
            description=description or "",
            status=status,
        )
        if status is RoomStatus.ACTIVE:
            room.started_at = room.created_at
        self._rooms[room_id] = room
        logger.info(f"Created {kind.value} room {room_id} for host {host.name}")
        return room

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def delete(self, room_id: str) -> Room | None:
        room = self._rooms.pop(room_id, None)
        if room is None:
            return None
        for poll in room.polls.values():
            poll.cancel_expiry()
        logger.info(f"Deleted {room.kind.value} room {room_id}")
        return room

    def require(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomNotFound(room_id=room_id)
        return room

    def list_rooms(self, kind: RoomKind | None = None) -> list[Room]:
        return [room for room in self._rooms.values() if kind is None or room.kind is kind]

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def _unique_room_id(self, kind: RoomKind) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            room_id = f"{kind.prefix}{_generate_room_code()}"
            if room_id not in self._rooms:
                return room_id
        raise RoomIdExhausted(f"Could not allocate a {kind.value} room id")
