from __future__ import annotations

import enum
from typing import Annotated, Any, Literal, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from app.core.errors import InvalidPayload
from app.models.room import RoomKind
from app.schemas.rooms import DocumentCreate, MemberProfile


class InboundModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CreateRoom(InboundModel):
    event: Literal["create-room"]
    room_id: str | None = Field(default=None, min_length=1, max_length=64)
    kind: RoomKind | None = None
    host_profile: MemberProfile
    title: str | None = Field(default=None, max_length=200)
    description: str | None = None


class JoinRoom(InboundModel):
    event: Literal["join-room", "join-request"]
    room_id: str = Field(min_length=1)
    member_profile: MemberProfile


class ApproveJoin(InboundModel):
    event: Literal["approve-join"]
    request_connection_id: str = Field(min_length=1)
    room_id: str = Field(min_length=1)


class RejectJoin(InboundModel):
    event: Literal["reject-join"]
    request_connection_id: str = Field(min_length=1)
    room_id: str = Field(min_length=1)
    reason: str | None = None


class ConfirmJoin(InboundModel):
    event: Literal["confirm-join"]
    room_id: str = Field(min_length=1)
    member_profile: MemberProfile


class LeaveRoom(InboundModel):
    event: Literal["leave-room"]
    room_id: str = Field(min_length=1)


class CreatePoll(InboundModel):
    event: Literal["create-poll"]
    room_id: str = Field(min_length=1)
    question: str = Field(min_length=1, max_length=500)
    options: list[str] = Field(min_length=2, max_length=20)
    duration_seconds: int | None = Field(default=None, ge=1)


class VotePoll(InboundModel):
    event: Literal["vote-poll"]
    poll_id: str = Field(min_length=1)
    option_id: int
    subject_id: str | None = None


class EndPoll(InboundModel):
    event: Literal["end-poll"]
    poll_id: str = Field(min_length=1)


class SendMessage(InboundModel):
    event: Literal["send-message"]
    room_id: str = Field(min_length=1)
    message: dict[str, Any]


class MemberFlag(InboundModel):
    event: Literal["raise-hand", "lower-hand", "toggle-audio", "toggle-video"]
    room_id: str = Field(min_length=1)
    subject_id: str | None = None
    flag: bool | None = None


class ToggleChat(InboundModel):
    event: Literal["toggle-chat"]
    room_id: str = Field(min_length=1)
    enabled: bool


class ShareDocument(InboundModel):
    event: Literal["share-document"]
    room_id: str = Field(min_length=1)
    document: DocumentCreate


class MarkAttendance(InboundModel):
    event: Literal["mark-attendance"]
    room_id: str = Field(min_length=1)


class SubmitFeedback(InboundModel):
    event: Literal["submit-feedback"]
    room_id: str = Field(min_length=1)
    feedback: dict[str, Any]


class UploadNote(InboundModel):
    event: Literal["upload-note"]
    room_id: str = Field(min_length=1)
    note: dict[str, Any]


class StartTest(InboundModel):
    event: Literal["start-test"]
    room_id: str = Field(min_length=1)
    test: dict[str, Any]


class SubmitTest(InboundModel):
    event: Literal["submit-test"]
    room_id: str = Field(min_length=1)
    result: dict[str, Any]


class HostScreenShare(InboundModel):
    event: Literal["start-screen-share", "stop-screen-share"]
    room_id: str = Field(min_length=1)
    stream_data: Any = None


class SyncParticipants(InboundModel):
    event: Literal["sync-participants"]
    room_id: str = Field(min_length=1)
    participants: list[Any] = Field(default_factory=list)
    total: int | None = Field(default=None, ge=0)


class ShareUserInfo(InboundModel):
    event: Literal["share-user-info"]
    room_id: str = Field(min_length=1)
    user_id: str | None = None
    name: str = Field(min_length=1, max_length=64)


class RoomRelay(InboundModel):
    event: Literal[
        "whiteboard-draw",
        "whiteboard-clear",
        "whiteboard-state",
        "open-whiteboard",
        "close-whiteboard",
        "screen-share-started",
        "screen-share-stopped",
        "mute-all",
    ]
    room_id: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class Signal(InboundModel):
    event: Literal["signal-offer", "signal-answer", "signal-ice"]
    target_connection_id: str = Field(min_length=1)
    payload: Any = None


class EndSession(InboundModel):
    event: Literal["end-session"]
    room_id: str = Field(min_length=1)


class EventEnd(InboundModel):
    event: Literal["event-end"]
    room_id: str = Field(min_length=1)


InboundEvent = Annotated[
    Union[
        CreateRoom,
        JoinRoom,
        ApproveJoin,
        RejectJoin,
        ConfirmJoin,
        LeaveRoom,
        CreatePoll,
        VotePoll,
        EndPoll,
        SendMessage,
        MemberFlag,
        ToggleChat,
        ShareDocument,
        MarkAttendance,
        SubmitFeedback,
        UploadNote,
        StartTest,
        SubmitTest,
        HostScreenShare,
        SyncParticipants,
        ShareUserInfo,
        RoomRelay,
        Signal,
        EndSession,
        EventEnd,
    ],
    Field(discriminator="event"),
]

inbound_adapter: TypeAdapter[InboundEvent] = TypeAdapter(InboundEvent)

INBOUND_EVENT_NAMES = frozenset(
    name
    for model in get_args(get_args(InboundEvent)[0])
    for name in get_args(model.model_fields["event"].annotation)
)


def parse_inbound(raw: Any) -> InboundEvent | None:
    """Validate a decoded frame; unknown event names yield None."""
    if not isinstance(raw, dict):
        raise InvalidPayload("Frame must be a JSON object")
    name = raw.get("event")
    if name not in INBOUND_EVENT_NAMES:
        return None
    try:
        return inbound_adapter.validate_python(raw)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"][1:]) for err in exc.errors()})
        raise InvalidPayload(f"Invalid payload for {name}", event=name, fields=fields) from exc


class OutboundEvent(str, enum.Enum):
    CONNECTED = "connected"
    ERROR = "error"
    ROOM_CREATED = "room-created"
    ROOM_JOINED = "room-joined"
    ROOM_NOT_FOUND = "room-not-found"
    JOIN_REQUEST = "join-request"
    JOIN_PENDING = "join-pending"
    JOIN_APPROVED = "join-approved"
    JOIN_REJECTED = "join-rejected"
    ATTENDEE_JOINED = "attendee-joined"
    STUDENT_JOINED = "student-joined"
    USER_CONNECTED = "user-connected"
    USER_DISCONNECTED = "user-disconnected"
    STUDENT_LEFT = "student-left"
    ATTENDEE_LEFT = "attendee-left"
    POLL_STARTED = "poll-started"
    POLL_VOTE = "poll-vote"
    POLL_ENDED = "poll-ended"
    MESSAGE = "message"
    HAND_RAISED = "hand-raised"
    HAND_LOWERED = "hand-lowered"
    AUDIO_TOGGLED = "audio-toggled"
    VIDEO_TOGGLED = "video-toggled"
    CHAT_TOGGLED = "chat-toggled"
    DOCUMENT_SHARED = "document-shared"
    ATTENDANCE_MARKED = "attendance-marked"
    NOTES_SHARED = "notes-shared"
    TEST_STARTED = "test-started"
    LEADERBOARD_UPDATED = "leaderboard-updated"
    SCREEN_SHARE_STARTED = "screen-share-started"
    SCREEN_SHARE_STOPPED = "screen-share-stopped"
    PARTICIPANTS_UPDATE = "participants-update"
    USER_INFO_SHARED = "user-info-shared"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    HOST_DISCONNECTED = "host-disconnected"
    SESSION_ENDED = "session-ended"
    EVENT_ENDED = "event-ended"


class ServerEvent(BaseModel):
    event: str
    data: dict[str, Any] = Field(default_factory=dict)


def server_event(event: OutboundEvent | str, data: dict[str, Any] | None = None) -> dict[str, Any]:
    name = event.value if isinstance(event, OutboundEvent) else event
    return ServerEvent(event=name, data=data or {}).model_dump(mode="json")
