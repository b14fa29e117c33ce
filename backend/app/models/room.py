from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoomKind(str, enum.Enum):
    TEACHING = "teaching"
    GAMING = "gaming"
    EVENT = "event"

    @property
    def prefix(self) -> str:
        return _KIND_PREFIXES[self]

    @classmethod
    def from_room_id(cls, room_id: str) -> "RoomKind":
        # any id without a gaming or event prefix is a teaching room
        if room_id.startswith(cls.GAMING.prefix):
            return cls.GAMING
        if room_id.startswith(cls.EVENT.prefix):
            return cls.EVENT
        return cls.TEACHING


_KIND_PREFIXES = {
    RoomKind.TEACHING: "CLASS-",
    RoomKind.GAMING: "GAME-",
    RoomKind.EVENT: "EVENT-",
}


class RoomStatus(str, enum.Enum):
    CREATED = "created"
    ACTIVE = "active"
    ENDED = "ended"


class PollStatus(str, enum.Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class Cancellable(Protocol):
    def cancel(self) -> None: ...


@dataclass
class Member:
    connection_id: str | None
    name: str
    subject_id: str | None = None
    email: str | None = None
    avatar: str | None = None
    hand_raised: bool = False
    audio: bool = True
    video: bool = True
    screenshare: bool = False
    joined_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not self.avatar and self.name:
            self.avatar = self.name[0].upper()


@dataclass
class JoinRequest:
    connection_id: str
    room_id: str
    profile: Member
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Document:
    name: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    filename: str | None = None
    size: int | None = None
    content_type: str | None = None
    download_url: str | None = None
    uploaded_at: datetime = field(default_factory=utcnow)


@dataclass
class AttendanceRecord:
    subject_id: str
    name: str
    email: str | None = None
    joined_at: datetime = field(default_factory=utcnow)
    present: bool = True


@dataclass
class RoomSettings:
    chat_enabled: bool = True
    hands_enabled: bool = True
    documents_enabled: bool = True
    polls_enabled: bool = True


@dataclass
class PollOption:
    id: int
    text: str
    votes: int = 0
    voters: list[str] = field(default_factory=list)


@dataclass
class Poll:
    id: str
    room_id: str
    question: str
    options: list[PollOption]
    duration_seconds: int
    created_at: datetime
    expires_at: datetime
    status: PollStatus = PollStatus.ACTIVE
    total_votes: int = 0
    closed_at: datetime | None = None
    expiry_handle: Cancellable | None = field(default=None, repr=False, compare=False)

    @property
    def is_active(self) -> bool:
        return self.status is PollStatus.ACTIVE

    def has_voted(self, subject_id: str) -> bool:
        return any(subject_id in option.voters for option in self.options)

    def close(self) -> bool:
        """Move to closed; returns False when the poll was already closed."""
        self.cancel_expiry()
        if self.status is not PollStatus.ACTIVE:
            return False
        self.status = PollStatus.CLOSED
        self.closed_at = utcnow()
        return True

    def cancel_expiry(self) -> None:
        if self.expiry_handle is not None:
            self.expiry_handle.cancel()
            self.expiry_handle = None


@dataclass
class Room:
    id: str
    kind: RoomKind
    host: Member
    host_connection_id: str | None = None
    title: str = "Untitled"
    description: str = ""
    status: RoomStatus = RoomStatus.ACTIVE
    members: list[Member] = field(default_factory=list)
    messages: list[dict[str, Any]] = field(default_factory=list)
    documents: list[Document] = field(default_factory=list)
    polls: dict[str, Poll] = field(default_factory=dict)
    attendance: list[AttendanceRecord] = field(default_factory=list)
    feedback: list[dict[str, Any]] = field(default_factory=list)
    notes: list[dict[str, Any]] = field(default_factory=list)
    test_results: list[dict[str, Any]] = field(default_factory=list)
    settings: RoomSettings = field(default_factory=RoomSettings)
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    ended_at: datetime | None = None

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "kind" and "kind" in self.__dict__:
            raise AttributeError("room kind is fixed at creation")
        super().__setattr__(name, value)

    @property
    def host_active(self) -> bool:
        return self.host_connection_id is not None

    @property
    def poll_ids(self) -> set[str]:
        return set(self.polls)

    def is_host(self, connection_id: str | None) -> bool:
        return connection_id is not None and connection_id == self.host_connection_id

    def find_member(self, connection_id: str) -> Member | None:
        return next((m for m in self.members if m.connection_id == connection_id), None)

    def find_member_by_subject(self, subject_id: str) -> Member | None:
        return next((m for m in self.members if m.subject_id == subject_id), None)

    def remove_member(self, connection_id: str) -> Member | None:
        member = self.find_member(connection_id)
        if member is not None:
            self.members.remove(member)
        return member

    def connection_ids(self) -> list[str]:
        """Live connections of the room, host first, without duplicates."""
        ids: list[str] = []
        if self.host_connection_id:
            ids.append(self.host_connection_id)
        for member in self.members:
            if member.connection_id and member.connection_id not in ids:
                ids.append(member.connection_id)
        return ids
