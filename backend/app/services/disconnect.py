from __future__ import annotations

from typing import Callable, Dict

from app.core.logging_config import get_logger
from app.models.room import Room, RoomKind
from app.schemas.messages import OutboundEvent
from app.services.broadcast import BroadcastRouter
from app.services.connections import ConnectionRegistry
from app.services.events import ConnectionHub
from app.services.membership import MembershipManager
from app.services.rooms import RoomRegistry

logger = get_logger(__name__)


class DisconnectReconciler:
    """Cleans up after a lost connection across every room it was in.

    Host loss is decided per room kind:

    - gaming: the room is deleted and everyone left gets ``host-disconnected``
    - teaching: the room stays, the host seat is vacated (``hostActive`` false)
    - event: the host socket is dropped, host identity is kept, nothing is sent
    """

    def __init__(
        self,
        rooms: RoomRegistry,
        connections: ConnectionRegistry,
        membership: MembershipManager,
        router: BroadcastRouter,
        hub: ConnectionHub,
    ) -> None:
        self.rooms = rooms
        self.connections = connections
        self.membership = membership
        self.router = router
        self.hub = hub
        self.host_loss_policy: Dict[RoomKind, Callable[[Room, str], None]] = {
            RoomKind.GAMING: self._delete_room,
            RoomKind.TEACHING: self._vacate_host,
            RoomKind.EVENT: self._drop_host_socket,
        }

    def reconcile(self, connection_id: str) -> list[str]:
        """Returns the ids of the rooms the connection was cleaned out of."""
        connection = self.connections.get(connection_id)
        if connection is None:
            logger.debug(f"Connection {connection_id} already reconciled")
            self.hub.close(connection_id)
            return []

        room_ids = sorted(connection.rooms)
        logger.info(f"Connection {connection_id} lost, reconciling {len(room_ids)} rooms")
        try:
            for room_id in room_ids:
                room = self.rooms.get(room_id)
                if room is None:
                    continue
                try:
                    self._reconcile_room(room, connection_id)
                except Exception:
                    logger.exception(f"Failed to reconcile room {room_id} for connection {connection_id}")
            self.membership.forget_connection(connection_id)
        finally:
            self.connections.remove(connection_id)
            self.hub.close(connection_id)
        return room_ids

    def _reconcile_room(self, room: Room, connection_id: str) -> None:
        if room.is_host(connection_id):
            self.host_loss_policy[room.kind](room, connection_id)
            return
        member = room.remove_member(connection_id)
        self.membership.discard_request(room.id, connection_id)
        if member is not None:
            logger.info(f"{member.name} disconnected from {room.kind.value} room {room.id}")
            self.membership.notify_member_left(room, member)

    def _delete_room(self, room: Room, connection_id: str) -> None:
        targets = [cid for cid in room.connection_ids() if cid != connection_id]
        self.membership.drop_room(room)
        logger.info(f"Gaming room {room.id} deleted after host disconnect")
        self.router.send_to(room, OutboundEvent.HOST_DISCONNECTED, {"roomId": room.id}, targets=targets)

    def _vacate_host(self, room: Room, connection_id: str) -> None:
        room.host_connection_id = None
        room.host.connection_id = None
        logger.info(f"Host left teaching room {room.id}, keeping it open")

    def _drop_host_socket(self, room: Room, connection_id: str) -> None:
        room.host_connection_id = None
        room.host.connection_id = None
        logger.info(f"Host socket lost for event {room.id}")
