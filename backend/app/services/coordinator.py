from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict

from app.core.config import Settings, settings as default_settings
from app.core.errors import CoordinationError, InvalidPayload, RoomNotFound
from app.core.logging_config import get_logger
from app.models.room import Room, RoomKind, RoomStatus
from app.schemas import messages as m
from app.schemas.rooms import EventStats, RoomSummary
from app.services.broadcast import BroadcastRouter
from app.services.connections import ConnectionRegistry
from app.services.disconnect import DisconnectReconciler
from app.services.events import ConnectionHub
from app.services.membership import MembershipManager
from app.services.polls import PollEngine, serialize_poll
from app.services.rooms import RoomRegistry
from app.services.scheduler import LoopScheduler, Scheduler
from app.services.signaling import SignalingRelay

logger = get_logger(__name__)


class Coordinator:
    """Single owner of room and connection state for the process.

    Every public method is synchronous, so on the event loop each inbound
    frame, HTTP call or poll timer runs to completion before the next one.
    """

    def __init__(self, scheduler: Scheduler | None = None, config: Settings | None = None) -> None:
        self.config = config or default_settings
        self.hub = ConnectionHub()
        self.connections = ConnectionRegistry()
        self.rooms = RoomRegistry()
        self.router = BroadcastRouter(self.rooms, self.hub)
        self.signaling = SignalingRelay(self.connections, self.hub)
        self.polls = PollEngine(
            self.rooms,
            self.router,
            scheduler or LoopScheduler(),
            default_duration=self.config.default_poll_seconds,
            max_duration=self.config.max_poll_seconds,
        )
        self.membership = MembershipManager(self.rooms, self.connections, self.router, self.polls)
        self.reconciler = DisconnectReconciler(self.rooms, self.connections, self.membership, self.router, self.hub)
        self._handlers: Dict[type, Callable[[str, Any], Any]] = {
            m.CreateRoom: self._on_create_room,
            m.JoinRoom: self._on_join_room,
            m.ApproveJoin: self._on_approve_join,
            m.RejectJoin: self._on_reject_join,
            m.ConfirmJoin: self._on_confirm_join,
            m.LeaveRoom: self._on_leave_room,
            m.CreatePoll: self._on_create_poll,
            m.VotePoll: self._on_vote_poll,
            m.EndPoll: self._on_end_poll,
            m.SendMessage: self._on_send_message,
            m.MemberFlag: self._on_member_flag,
            m.ToggleChat: self._on_toggle_chat,
            m.ShareDocument: self._on_share_document,
            m.MarkAttendance: self._on_mark_attendance,
            m.SubmitFeedback: self._on_submit_feedback,
            m.UploadNote: self._on_upload_note,
            m.StartTest: self._on_start_test,
            m.SubmitTest: self._on_submit_test,
            m.HostScreenShare: self._on_host_screen_share,
            m.SyncParticipants: self._on_sync_participants,
            m.ShareUserInfo: self._on_share_user_info,
            m.RoomRelay: self._on_room_relay,
            m.Signal: self._on_signal,
            m.EndSession: self._on_end_session,
            m.EventEnd: self._on_event_end,
        }

    # -- connection lifecycle -----------------------------------------------

    def connect(self, connection_id: str, subject_id: str) -> asyncio.Queue[str]:
        queue = self.hub.open(connection_id)
        self.connections.register(connection_id, subject_id)
        self.router.direct(connection_id, m.OutboundEvent.CONNECTED, {"connectionId": connection_id, "subjectId": subject_id})
        logger.info(f"Connection {connection_id} opened for subject {subject_id}")
        return queue

    def disconnect(self, connection_id: str) -> list[str]:
        return self.reconciler.reconcile(connection_id)

    # -- inbound frames -----------------------------------------------------

    def handle(self, connection_id: str, raw: Any) -> Any:
        """Validate and apply one inbound frame; failures go back to the sender only."""
        try:
            event = m.parse_inbound(raw)
            if event is None:
                logger.debug(f"Ignoring unknown event {raw.get('event')!r} from {connection_id}")
                return None
            return self.dispatch(connection_id, event)
        except CoordinationError as exc:
            logger.warning(f"{exc.code} for connection {connection_id}: {exc.message}")
            self.report(connection_id, exc)
            return None

    def dispatch(self, connection_id: str, event: Any) -> Any:
        connection = self.connections.get(connection_id)
        if connection is None or not connection.subject_id:
            raise InvalidPayload("Connection is not identified")
        handler = self._handlers[type(event)]
        return handler(connection_id, event)

    def report(self, connection_id: str, exc: CoordinationError) -> None:
        if isinstance(exc, RoomNotFound):
            self.router.direct(
                connection_id,
                m.OutboundEvent.ROOM_NOT_FOUND,
                {"success": False, **exc.to_payload()},
            )
        else:
            self.router.direct(connection_id, m.OutboundEvent.ERROR, exc.to_payload())

    def _on_create_room(self, connection_id: str, event: m.CreateRoom) -> Room:
        return self.membership.create_room(
            connection_id,
            event.host_profile,
            room_id=event.room_id,
            kind=event.kind,
            title=event.title,
            description=event.description,
        )

    def _on_join_room(self, connection_id: str, event: m.JoinRoom):
        return self.membership.join(connection_id, event.room_id, event.member_profile)

    def _on_approve_join(self, connection_id: str, event: m.ApproveJoin):
        return self.membership.approve(connection_id, event.room_id, event.request_connection_id)

    def _on_reject_join(self, connection_id: str, event: m.RejectJoin):
        return self.membership.reject(connection_id, event.room_id, event.request_connection_id, event.reason)

    def _on_confirm_join(self, connection_id: str, event: m.ConfirmJoin):
        return self.membership.confirm(connection_id, event.room_id, event.member_profile)

    def _on_leave_room(self, connection_id: str, event: m.LeaveRoom):
        return self.membership.leave(connection_id, event.room_id)

    def _on_create_poll(self, connection_id: str, event: m.CreatePoll):
        return self.polls.create(event.room_id, event.question, event.options, event.duration_seconds)

    def _on_vote_poll(self, connection_id: str, event: m.VotePoll):
        subject_id = self.connections.subject_of(connection_id) or event.subject_id
        poll = self.polls.vote(event.poll_id, event.option_id, subject_id, voter_connection_id=connection_id)
        self.router.direct(connection_id, m.OutboundEvent.POLL_VOTE, {"poll": serialize_poll(poll)})
        return poll

    def _on_end_poll(self, connection_id: str, event: m.EndPoll):
        return self.polls.end(event.poll_id, actor_id=connection_id)

    def _on_send_message(self, connection_id: str, event: m.SendMessage):
        return self.router.chat(event.room_id, connection_id, event.message)

    def _on_member_flag(self, connection_id: str, event: m.MemberFlag):
        return self.router.set_member_flag(event.room_id, connection_id, event.event, event.subject_id, event.flag)

    def _on_toggle_chat(self, connection_id: str, event: m.ToggleChat):
        return self.router.toggle_chat(event.room_id, connection_id, event.enabled)

    def _on_share_document(self, connection_id: str, event: m.ShareDocument):
        return self.router.share_document(event.room_id, event.document, actor_id=connection_id)

    def _on_mark_attendance(self, connection_id: str, event: m.MarkAttendance):
        return self.membership.mark_attendance(connection_id, event.room_id)

    def _on_submit_feedback(self, connection_id: str, event: m.SubmitFeedback):
        return self.membership.submit_feedback(connection_id, event.room_id, event.feedback)

    def _on_upload_note(self, connection_id: str, event: m.UploadNote):
        return self.router.share_note(event.room_id, connection_id, event.note)

    def _on_start_test(self, connection_id: str, event: m.StartTest):
        return self.router.start_test(event.room_id, connection_id, event.test)

    def _on_submit_test(self, connection_id: str, event: m.SubmitTest):
        subject_id = self.connections.subject_of(connection_id)
        return self.router.submit_test(event.room_id, connection_id, subject_id, event.result)

    def _on_host_screen_share(self, connection_id: str, event: m.HostScreenShare):
        return self.router.host_screen_share(event.room_id, connection_id, event.event, event.stream_data)

    def _on_sync_participants(self, connection_id: str, event: m.SyncParticipants):
        return self.router.sync_participants(event.room_id, connection_id, event.participants, event.total)

    def _on_share_user_info(self, connection_id: str, event: m.ShareUserInfo):
        return self.router.share_user_info(event.room_id, connection_id, event.user_id, event.name)

    def _on_room_relay(self, connection_id: str, event: m.RoomRelay):
        return self.router.relay(event.room_id, connection_id, event.event, event.data)

    def _on_signal(self, connection_id: str, event: m.Signal):
        return self.signaling.relay(event.event, connection_id, event.target_connection_id, event.payload)

    def _on_end_session(self, connection_id: str, event: m.EndSession):
        return self.membership.end_session(connection_id, event.room_id)

    def _on_event_end(self, connection_id: str, event: m.EventEnd):
        return self.membership.end_event(connection_id, event.room_id)

    # -- read side for HTTP collaborators -----------------------------------

    def summaries(self, kind: RoomKind | None = None) -> list[RoomSummary]:
        return [
            RoomSummary(
                id=room.id,
                kind=room.kind,
                title=room.title,
                host_name=room.host.name,
                member_count=len(room.members),
                host_active=room.host_active,
                status=room.status,
                created_at=room.created_at,
            )
            for room in self.rooms.list_rooms(kind)
        ]

    def event_stats(self) -> EventStats:
        events = self.rooms.list_rooms(RoomKind.EVENT)
        return EventStats(
            total_events=len(events),
            active_events=sum(1 for e in events if e.status is RoomStatus.ACTIVE),
            total_attendees=sum(len(e.members) for e in events),
            total_polls=sum(len(e.polls) for e in events),
        )
