from __future__ import annotations

from typing import Any, Dict

from app.core.errors import (
    InvalidPayload,
    JoinNotApproved,
    JoinRequestNotFound,
    NotRoomHost,
    RoomNotActive,
    RoomNotFound,
)
from app.core.logging_config import get_logger
from app.models.room import AttendanceRecord, JoinRequest, Member, Room, RoomKind, RoomStatus, utcnow
from app.schemas.messages import OutboundEvent
from app.schemas.rooms import AttendanceRead, DocumentRead, EventSnapshot, MemberProfile, MemberRead, RoomSettingsRead
from app.services.broadcast import BroadcastRouter
from app.services.connections import ConnectionRegistry
from app.services.polls import PollEngine
from app.services.rooms import RoomRegistry

logger = get_logger(__name__)


def serialize_member(member: Member) -> dict[str, Any]:
    return MemberRead.model_validate(member).dump()


def serialize_members(members: list[Member]) -> list[dict[str, Any]]:
    return [serialize_member(m) for m in members]


def event_snapshot(room: Room) -> dict[str, Any]:
    return EventSnapshot(
        title=room.title,
        description=room.description,
        host=room.host.name,
        attendees=[MemberRead.model_validate(m) for m in room.members],
        documents=[DocumentRead.model_validate(d) for d in room.documents],
        settings=RoomSettingsRead.model_validate(room.settings),
    ).dump()


class MembershipManager:
    """Room creation, the per-kind join workflows, leaving and ending sessions."""

    def __init__(
        self,
        rooms: RoomRegistry,
        connections: ConnectionRegistry,
        router: BroadcastRouter,
        polls: PollEngine,
    ) -> None:
        self.rooms = rooms
        self.connections = connections
        self.router = router
        self.polls = polls
        # room id -> requester connection id -> request
        self._pending: Dict[str, Dict[str, JoinRequest]] = {}
        self._approved: Dict[str, set[str]] = {}

    # -- creation -----------------------------------------------------------

    def create_room(
        self,
        connection_id: str,
        host_profile: MemberProfile,
        room_id: str | None = None,
        kind: RoomKind | None = None,
        title: str | None = None,
        description: str | None = None,
    ) -> Room:
        subject_id = self.connections.subject_of(connection_id) or host_profile.id
        if room_id:
            implied = RoomKind.from_room_id(room_id)
            if kind is not None and kind is not implied:
                raise InvalidPayload(f"Room id {room_id} is not a {kind.value} room")
            kind = implied
        kind = kind or RoomKind.TEACHING

        existing = self.rooms.get(room_id) if room_id else None
        if kind is RoomKind.EVENT:
            if existing is None:
                raise RoomNotFound(room_id=room_id)
            room = self._open_event(existing, connection_id, subject_id)
        elif existing is not None:
            room = self._reclaim_host(existing, connection_id, subject_id)
        else:
            host = self._member(host_profile, connection_id, subject_id)
            room = self.rooms.create(
                kind,
                host,
                host_connection_id=connection_id,
                room_id=room_id,
                title=title or f"{host.name}'s {kind.value} room",
                description=description,
            )
            self.connections.attach(connection_id, room.id)

        self.router.direct(
            connection_id,
            OutboundEvent.ROOM_CREATED,
            {"roomId": room.id, "kind": room.kind.value, "hostId": connection_id, "success": True},
        )
        return room

    def create_event(self, host_name: str, host_email: str | None = None, title: str | None = None, description: str | None = None) -> Room:
        host = Member(connection_id=None, name=host_name, email=host_email)
        return self.rooms.create(
            RoomKind.EVENT,
            host,
            title=title or "Untitled Event",
            description=description,
            status=RoomStatus.CREATED,
        )

    def _open_event(self, room: Room, connection_id: str, subject_id: str | None) -> Room:
        if room.status is RoomStatus.ENDED:
            raise RoomNotActive(room_id=room.id)
        if room.host.subject_id and subject_id != room.host.subject_id:
            raise NotRoomHost(room_id=room.id)
        room.host.subject_id = subject_id
        room.host.connection_id = connection_id
        self._swap_host_connection(room, connection_id)
        if room.status is RoomStatus.CREATED:
            room.status = RoomStatus.ACTIVE
            room.started_at = utcnow()
        logger.info(f"Event room {room.id} activated by {connection_id}")
        return room

    def _reclaim_host(self, room: Room, connection_id: str, subject_id: str | None) -> Room:
        if room.host.subject_id != subject_id:
            logger.warning(f"Connection {connection_id} tried to take over room {room.id}")
            raise NotRoomHost(room_id=room.id)
        room.host.connection_id = connection_id
        self._swap_host_connection(room, connection_id)
        logger.info(f"Host reconnected to {room.kind.value} room {room.id}")
        if room.kind is RoomKind.TEACHING:
            for request in self._pending.get(room.id, {}).values():
                self.router.direct(connection_id, OutboundEvent.JOIN_REQUEST, self._request_payload(request))
        return room

    def _swap_host_connection(self, room: Room, connection_id: str) -> None:
        previous = room.host_connection_id
        if previous and previous != connection_id:
            self.connections.detach(previous, room.id)
        room.host_connection_id = connection_id
        self.connections.attach(connection_id, room.id)

    # -- joining ------------------------------------------------------------

    def join(self, connection_id: str, room_id: str, profile: MemberProfile) -> Room:
        room = self.rooms.require(room_id)
        if room.is_host(connection_id):
            raise InvalidPayload("The host is already in this room", room_id=room_id)
        if room.kind is RoomKind.EVENT:
            self._join_event(room, connection_id, profile)
        elif room.kind is RoomKind.GAMING:
            self._join_gaming(room, connection_id, profile)
        else:
            self._request_join(room, connection_id, profile)
        return room

    def _join_event(self, room: Room, connection_id: str, profile: MemberProfile) -> Member:
        if room.status is not RoomStatus.ACTIVE:
            raise RoomNotActive(room_id=room.id, status=room.status.value)
        attendee = self._member(profile, connection_id, self.connections.subject_of(connection_id))
        existing = room.find_member(connection_id)
        if existing is None and attendee.subject_id:
            existing = room.find_member_by_subject(attendee.subject_id)
        self._place_member(room, attendee, existing)
        logger.info(f"Attendee {attendee.name} joined event {room.id} ({len(room.members)} attendees)")

        self.router.send_to(room, OutboundEvent.ATTENDEE_JOINED, serialize_member(attendee))
        self.router.direct(
            connection_id,
            OutboundEvent.ROOM_JOINED,
            {"roomId": room.id, "success": True, "event": event_snapshot(room)},
        )
        return attendee

    def _join_gaming(self, room: Room, connection_id: str, profile: MemberProfile) -> Member:
        participant = self._member(profile, connection_id, self.connections.subject_of(connection_id))
        # a rejoin on the same socket or under the same display name is a reconnect
        existing = room.find_member(connection_id) or next(
            (p for p in room.members if p.name == participant.name), None
        )
        self._place_member(room, participant, existing)
        logger.info(f"Participant {participant.name} joined gaming room {room.id} ({len(room.members)} participants)")

        self.router.send_to(room, OutboundEvent.USER_CONNECTED, {"connectionId": connection_id}, exclude=connection_id)
        self.router.direct(
            connection_id,
            OutboundEvent.ROOM_JOINED,
            {
                "roomId": room.id,
                "hostId": room.host_connection_id,
                "participants": serialize_members([p for p in room.members if p.connection_id != connection_id]),
                "success": True,
            },
        )
        return participant

    def _place_member(self, room: Room, member: Member, existing: Member | None) -> None:
        if existing is None:
            room.members.append(member)
        else:
            room.members[room.members.index(existing)] = member
            if existing.connection_id and existing.connection_id != member.connection_id:
                self.connections.detach(existing.connection_id, room.id)
        self.connections.attach(member.connection_id, room.id)

    def _request_join(self, room: Room, connection_id: str, profile: MemberProfile) -> JoinRequest:
        request = JoinRequest(
            connection_id=connection_id,
            room_id=room.id,
            profile=self._member(profile, connection_id, self.connections.subject_of(connection_id)),
        )
        self._pending.setdefault(room.id, {})[connection_id] = request
        self._approved.get(room.id, set()).discard(connection_id)
        logger.info(f"Join request for {room.id} from {request.profile.name}")

        if room.host_connection_id:
            self.router.direct(room.host_connection_id, OutboundEvent.JOIN_REQUEST, self._request_payload(request))
        self.router.direct(
            connection_id,
            OutboundEvent.JOIN_PENDING,
            {"roomId": room.id, "message": "Waiting for host approval..."},
        )
        return request

    def pending_requests(self, room_id: str) -> list[JoinRequest]:
        return list(self._pending.get(room_id, {}).values())

    def approve(self, connection_id: str, room_id: str, request_connection_id: str) -> JoinRequest:
        room = self._require_host(connection_id, room_id)
        request = self._pop_request(room, request_connection_id)
        self._approved.setdefault(room.id, set()).add(request_connection_id)
        logger.info(f"Host approved {request.profile.name} for room {room.id}")
        self.router.direct(
            request_connection_id,
            OutboundEvent.JOIN_APPROVED,
            {"roomId": room.id, "hostId": room.host_connection_id},
        )
        return request

    def reject(self, connection_id: str, room_id: str, request_connection_id: str, reason: str | None = None) -> JoinRequest:
        room = self._require_host(connection_id, room_id)
        request = self._pop_request(room, request_connection_id)
        logger.info(f"Host rejected {request.profile.name} for room {room.id}")
        self.router.direct(
            request_connection_id,
            OutboundEvent.JOIN_REJECTED,
            {"roomId": room.id, "reason": reason or "Host declined your request"},
        )
        return request

    def confirm(self, connection_id: str, room_id: str, profile: MemberProfile) -> Member:
        room = self.rooms.require(room_id)
        if room.kind is not RoomKind.TEACHING:
            raise InvalidPayload("Only teaching rooms use join confirmation", room_id=room_id)
        subject_id = self.connections.subject_of(connection_id) or profile.id
        existing = (room.find_member_by_subject(subject_id) if subject_id else None) or room.find_member(connection_id)

        if existing is not None:
            previous = existing.connection_id
            existing.connection_id = connection_id
            if previous and previous != connection_id:
                self.connections.detach(previous, room.id)
            self.connections.attach(connection_id, room.id)
            self._approved.get(room.id, set()).discard(connection_id)
            logger.info(f"Student {existing.name} already in {room.id}, updated connection")
            self._ack_student(room, connection_id)
            return existing

        approved = self._approved.get(room.id, set())
        if connection_id not in approved:
            raise JoinNotApproved(room_id=room_id)
        approved.discard(connection_id)

        student = self._member(profile, connection_id, subject_id)
        room.members.append(student)
        self.connections.attach(connection_id, room.id)
        logger.info(f"Student {student.name} joined {room.id} ({len(room.members)} students)")

        self.router.send_to(room, OutboundEvent.STUDENT_JOINED, serialize_member(student), exclude=connection_id)
        self._ack_student(room, connection_id)
        return student

    def _ack_student(self, room: Room, connection_id: str) -> None:
        self.router.direct(
            connection_id,
            OutboundEvent.ROOM_JOINED,
            {
                "roomId": room.id,
                "hostId": room.host_connection_id,
                "students": serialize_members(room.members),
                "success": True,
            },
        )

    # -- leaving and ending -------------------------------------------------

    def leave(self, connection_id: str, room_id: str) -> None:
        room = self.rooms.require(room_id)
        if room.is_host(connection_id):
            self.end_session(connection_id, room_id)
            return
        member = room.remove_member(connection_id)
        self.connections.detach(connection_id, room.id)
        self.discard_request(room.id, connection_id)
        if member is not None:
            logger.info(f"{member.name} left room {room.id}")
            self.notify_member_left(room, member)

    def notify_member_left(self, room: Room, member: Member) -> None:
        if room.kind is RoomKind.TEACHING:
            event = OutboundEvent.STUDENT_LEFT
            data = {"studentId": member.subject_id or member.connection_id, "connectionId": member.connection_id}
        elif room.kind is RoomKind.GAMING:
            event = OutboundEvent.USER_DISCONNECTED
            data = {"connectionId": member.connection_id}
        else:
            event = OutboundEvent.ATTENDEE_LEFT
            data = {"attendeeId": member.connection_id, "name": member.name}
        self.router.send_to(room, event, data, exclude=member.connection_id)

    def end_session(self, connection_id: str | None, room_id: str) -> Room:
        room = self._require_host(connection_id, room_id)
        targets = [cid for cid in room.connection_ids() if cid != connection_id]
        room.status = RoomStatus.ENDED
        room.ended_at = utcnow()
        self.drop_room(room)
        logger.info(f"Session {room.id} ended by host")
        self.router.send_to(room, OutboundEvent.SESSION_ENDED, {"roomId": room.id}, targets=targets)
        return room

    def end_event(self, connection_id: str | None, room_id: str) -> Room:
        room = self._require_host(connection_id, room_id)
        if room.kind is not RoomKind.EVENT:
            raise InvalidPayload("Only event rooms can be ended this way", room_id=room_id)
        if room.status is RoomStatus.ENDED:
            raise RoomNotActive(room_id=room_id, status=room.status.value)
        room.status = RoomStatus.ENDED
        room.ended_at = utcnow()
        closed = self.polls.close_all(room)
        logger.info(f"Event {room.id} ended, closed {len(closed)} polls")
        self.router.send_to(room, OutboundEvent.EVENT_ENDED, {"roomId": room.id}, exclude=connection_id)
        return room

    def drop_room(self, room: Room) -> None:
        """Remove a room and every reference a connection or request holds to it."""
        self.polls.forget_room(room)
        self.rooms.delete(room.id)
        self.connections.detach_room(room.id)
        self._pending.pop(room.id, None)
        self._approved.pop(room.id, None)

    def discard_request(self, room_id: str, connection_id: str) -> None:
        self._pending.get(room_id, {}).pop(connection_id, None)
        self._approved.get(room_id, set()).discard(connection_id)

    def forget_connection(self, connection_id: str) -> None:
        for room_id in list(self._pending) + list(self._approved):
            self.discard_request(room_id, connection_id)

    # -- teaching extras ----------------------------------------------------

    def mark_attendance(self, connection_id: str, room_id: str) -> AttendanceRecord:
        room = self.rooms.require(room_id)
        member = room.find_member(connection_id)
        if member is None:
            raise InvalidPayload("Only members can mark attendance", room_id=room_id)
        subject_id = member.subject_id or connection_id
        record = next((a for a in room.attendance if a.subject_id == subject_id), None)
        if record is not None:
            return record
        record = AttendanceRecord(subject_id=subject_id, name=member.name, email=member.email)
        room.attendance.append(record)
        self.router.send_to(
            room,
            OutboundEvent.ATTENDANCE_MARKED,
            AttendanceRead.model_validate(record).dump(),
            exclude=connection_id,
        )
        return record

    def submit_feedback(self, connection_id: str | None, room_id: str, feedback: dict[str, Any]) -> dict[str, Any]:
        room = self.rooms.require(room_id)
        entry = {
            **feedback,
            "subjectId": self.connections.subject_of(connection_id),
            "submittedAt": utcnow().isoformat(),
        }
        room.feedback.append(entry)
        return entry

    # -- helpers ------------------------------------------------------------

    def _require_host(self, connection_id: str | None, room_id: str) -> Room:
        room = self.rooms.require(room_id)
        if not room.is_host(connection_id):
            raise NotRoomHost(room_id=room_id)
        return room

    def _pop_request(self, room: Room, request_connection_id: str) -> JoinRequest:
        request = self._pending.get(room.id, {}).pop(request_connection_id, None)
        if request is None:
            raise JoinRequestNotFound(room_id=room.id, request_connection_id=request_connection_id)
        return request

    @staticmethod
    def _request_payload(request: JoinRequest) -> dict[str, Any]:
        return {
            "requestConnectionId": request.connection_id,
            "roomId": request.room_id,
            "student": serialize_member(request.profile),
            "timestamp": request.created_at.isoformat(),
        }

    @staticmethod
    def _member(profile: MemberProfile, connection_id: str | None, subject_id: str | None) -> Member:
        return Member(
            connection_id=connection_id,
            name=profile.name,
            subject_id=subject_id or profile.id,
            email=profile.email,
            avatar=profile.avatar,
        )
