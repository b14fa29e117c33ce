from __future__ import annotations

from typing import Any

from app.core.errors import InvalidPayload, NotRoomHost
from app.core.logging_config import get_logger
from app.models.room import Document, Member, Room, RoomKind, utcnow
from app.schemas.messages import OutboundEvent, server_event
from app.schemas.rooms import DocumentCreate, DocumentRead
from app.services.events import ConnectionHub
from app.services.rooms import RoomRegistry

logger = get_logger(__name__)

FLAG_EVENTS = {
    "raise-hand": OutboundEvent.HAND_RAISED,
    "lower-hand": OutboundEvent.HAND_LOWERED,
    "toggle-audio": OutboundEvent.AUDIO_TOGGLED,
    "toggle-video": OutboundEvent.VIDEO_TOGGLED,
}


class BroadcastRouter:
    def __init__(self, rooms: RoomRegistry, hub: ConnectionHub) -> None:
        self.rooms = rooms
        self.hub = hub

    def direct(self, connection_id: str | None, event: OutboundEvent | str, data: dict | None = None) -> bool:
        if connection_id is None:
            return False
        return self.hub.deliver(connection_id, server_event(event, data))

    def send(
        self,
        room_id: str,
        event: OutboundEvent | str,
        data: dict | None = None,
        exclude: str | None = None,
    ) -> int:
        room = self.rooms.get(room_id)
        if room is None:
            logger.debug(f"Broadcast {event} to missing room {room_id} skipped")
            return 0
        return self.send_to(room, event, data, exclude=exclude)

    def send_to(
        self,
        room: Room,
        event: OutboundEvent | str,
        data: dict | None = None,
        exclude: str | None = None,
        targets: list[str] | None = None,
    ) -> int:
        """Fan out to a snapshot of the room's live connections."""
        message = server_event(event, data)
        recipients = [cid for cid in (targets if targets is not None else room.connection_ids()) if cid != exclude]
        delivered = sum(1 for cid in recipients if self.hub.deliver(cid, message))
        logger.debug(f"Broadcast {message['event']} to {delivered}/{len(recipients)} connections in room {room.id}")
        return delivered

    def chat(self, room_id: str, sender_id: str | None, message: dict[str, Any]) -> dict[str, Any] | None:
        room = self.rooms.require(room_id)
        if room.kind is RoomKind.EVENT and not room.settings.chat_enabled:
            logger.debug(f"Chat disabled in room {room_id}, dropping message from {sender_id}")
            return None
        message = dict(message)
        message.setdefault("connectionId", sender_id)
        message.setdefault("timestamp", utcnow().isoformat())
        room.messages.append(message)
        self.send_to(room, OutboundEvent.MESSAGE, message)
        return message

    def set_member_flag(
        self,
        room_id: str,
        actor_id: str | None,
        action: str,
        subject_id: str | None = None,
        flag: bool | None = None,
    ) -> Member | None:
        room = self.rooms.require(room_id)
        if action in ("raise-hand", "lower-hand") and room.kind is RoomKind.EVENT and not room.settings.hands_enabled:
            logger.debug(f"Hands disabled in room {room_id}, dropping {action}")
            return None
        is_host = room.is_host(actor_id)
        actor = room.find_member(actor_id) if actor_id else None
        if actor is None and not is_host:
            raise InvalidPayload("Only room members can change member flags", room_id=room_id)
        target = subject_id or actor_id
        member = (room.find_member(target) or room.find_member_by_subject(target)) if target else None
        if not is_host and member is not actor:
            raise NotRoomHost(room_id=room_id)
        value = flag
        if member is not None:
            if action == "raise-hand":
                member.hand_raised = value = True
            elif action == "lower-hand":
                member.hand_raised = value = False
            elif action == "toggle-audio":
                member.audio = value = (not member.audio) if flag is None else flag
            elif action == "toggle-video":
                member.video = value = (not member.video) if flag is None else flag
        elif action in ("raise-hand", "lower-hand"):
            value = action == "raise-hand"
        self.send_to(room, FLAG_EVENTS[action], {"subjectId": target, "flag": value}, exclude=actor_id)
        return member

    def toggle_chat(self, room_id: str, actor_id: str | None, enabled: bool) -> None:
        room = self.rooms.require(room_id)
        if not room.is_host(actor_id):
            raise NotRoomHost(room_id=room_id)
        room.settings.chat_enabled = enabled
        self.send_to(room, OutboundEvent.CHAT_TOGGLED, {"enabled": enabled}, exclude=actor_id)

    def share_document(self, room_id: str, payload: DocumentCreate, actor_id: str | None = None) -> Document | None:
        room = self.rooms.require(room_id)
        if actor_id is not None and not room.settings.documents_enabled:
            logger.debug(f"Documents disabled in room {room_id}, dropping share from {actor_id}")
            return None
        document = Document(
            name=payload.name,
            filename=payload.filename or payload.name,
            size=payload.size,
            content_type=payload.content_type,
            download_url=payload.download_url,
        )
        room.documents.append(document)
        self.send_to(room, OutboundEvent.DOCUMENT_SHARED, DocumentRead.model_validate(document).dump(), exclude=actor_id)
        return document

    def relay(self, room_id: str, actor_id: str | None, event: str, data: dict[str, Any]) -> int:
        room = self.rooms.require(room_id)
        return self.send_to(room, event, {**data, "fromConnectionId": actor_id}, exclude=actor_id)

    # -- classroom ----------------------------------------------------------

    def share_note(self, room_id: str, actor_id: str | None, note: dict[str, Any]) -> dict[str, Any]:
        room = self._require_classroom_host(room_id, actor_id)
        note = {**note, "uploadedAt": utcnow().isoformat()}
        room.notes.append(note)
        self.send_to(room, OutboundEvent.NOTES_SHARED, note, exclude=actor_id)
        return note

    def start_test(self, room_id: str, actor_id: str | None, test: dict[str, Any]) -> None:
        room = self._require_classroom_host(room_id, actor_id)
        logger.info(f"Test started in room {room_id}")
        self.send_to(room, OutboundEvent.TEST_STARTED, test, exclude=actor_id)

    def submit_test(self, room_id: str, actor_id: str | None, subject_id: str | None, result: dict[str, Any]) -> list[dict[str, Any]]:
        """Record a student's result and send the whole leaderboard to the room."""
        room = self._require_classroom(room_id)
        member = room.find_member(actor_id) if actor_id else None
        if member is None:
            raise InvalidPayload("Only students in the room can submit a test", room_id=room_id)
        room.test_results.append(
            {
                **result,
                "subjectId": subject_id or member.subject_id,
                "name": member.name,
                "submittedAt": utcnow().isoformat(),
            }
        )
        self.send_to(room, OutboundEvent.LEADERBOARD_UPDATED, {"roomId": room.id, "results": room.test_results})
        return room.test_results

    def host_screen_share(self, room_id: str, actor_id: str | None, action: str, stream_data: Any = None) -> int:
        room = self.rooms.require(room_id)
        if not room.is_host(actor_id):
            raise NotRoomHost(room_id=room_id)
        data: dict[str, Any] = {"hostId": actor_id, "timestamp": utcnow().isoformat()}
        if action == "start-screen-share":
            event = OutboundEvent.SCREEN_SHARE_STARTED
            data["streamData"] = stream_data
        else:
            event = OutboundEvent.SCREEN_SHARE_STOPPED
        return self.send_to(room, event, data, exclude=actor_id)

    def sync_participants(self, room_id: str, actor_id: str | None, participants: list[Any], total: int | None) -> int:
        room = self.rooms.require(room_id)
        total = len(participants) if total is None else total
        return self.send_to(room, OutboundEvent.PARTICIPANTS_UPDATE, {"participants": participants, "total": total}, exclude=actor_id)

    def share_user_info(self, room_id: str, actor_id: str | None, user_id: str | None, name: str) -> int:
        room = self.rooms.require(room_id)
        data = {"userId": user_id or actor_id, "name": name, "isHost": room.is_host(actor_id)}
        return self.send_to(room, OutboundEvent.USER_INFO_SHARED, data, exclude=actor_id)

    def _require_classroom(self, room_id: str) -> Room:
        room = self.rooms.require(room_id)
        if room.kind is not RoomKind.TEACHING:
            raise InvalidPayload("Notes and tests are only available in teaching rooms", room_id=room_id)
        return room

    def _require_classroom_host(self, room_id: str, actor_id: str | None) -> Room:
        room = self._require_classroom(room_id)
        if not room.is_host(actor_id):
            raise NotRoomHost(room_id=room_id)
        return room
