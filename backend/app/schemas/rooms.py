from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.models.room import PollStatus, RoomKind, RoomStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class MemberRead(CamelModel):
    connection_id: str | None = None
    subject_id: str | None = None
    name: str
    email: str | None = None
    avatar: str | None = None
    hand_raised: bool = False
    audio: bool = True
    video: bool = True
    screenshare: bool = False
    joined_at: datetime


class DocumentRead(CamelModel):
    id: str
    name: str
    filename: str | None = None
    size: int | None = None
    content_type: str | None = None
    download_url: str | None = None
    uploaded_at: datetime


class RoomSettingsRead(CamelModel):
    chat_enabled: bool
    hands_enabled: bool
    documents_enabled: bool
    polls_enabled: bool


class PollOptionRead(CamelModel):
    id: int
    text: str
    votes: int
    voters: list[str]


class PollRead(CamelModel):
    id: str
    room_id: str
    question: str
    options: list[PollOptionRead]
    status: PollStatus
    duration_seconds: int
    created_at: datetime
    expires_at: datetime
    closed_at: datetime | None = None
    total_votes: int


class AttendanceRead(CamelModel):
    subject_id: str
    name: str
    email: str | None = None
    joined_at: datetime
    present: bool


class RoomRead(CamelModel):
    id: str
    kind: RoomKind
    title: str
    description: str
    status: RoomStatus
    host: MemberRead
    host_connection_id: str | None = None
    host_active: bool
    members: list[MemberRead]
    documents: list[DocumentRead]
    polls: list[PollRead]
    settings: RoomSettingsRead
    created_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @field_validator("polls", mode="before")
    @classmethod
    def _polls_as_list(cls, value):
        if isinstance(value, dict):
            return list(value.values())
        return value


class RoomSummary(CamelModel):
    id: str
    kind: RoomKind
    title: str
    host_name: str
    member_count: int
    host_active: bool
    status: RoomStatus
    created_at: datetime


class EventSnapshot(CamelModel):
    title: str
    description: str
    host: str
    attendees: list[MemberRead]
    documents: list[DocumentRead]
    settings: RoomSettingsRead


class MemberProfile(CamelModel):
    id: str | None = None
    name: str = Field(min_length=1, max_length=64)
    email: str | None = None
    avatar: str | None = None


class DocumentCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    filename: str | None = None
    size: int | None = Field(default=None, ge=0)
    content_type: str | None = Field(default=None, validation_alias=AliasChoices("contentType", "type", "content_type"))
    download_url: str | None = None


class EventCreate(CamelModel):
    title: str | None = Field(default=None, max_length=200)
    description: str | None = None
    host_name: str = Field(min_length=1, max_length=64)
    host_email: str | None = None


class EventCreated(CamelModel):
    success: bool = True
    event_id: str
    share_link: str


class PollCreate(CamelModel):
    question: str = Field(min_length=1, max_length=500)
    options: list[str] = Field(min_length=2, max_length=20)
    duration_seconds: int | None = Field(
        default=None,
        ge=1,
        validation_alias=AliasChoices("durationSeconds", "duration", "duration_seconds"),
    )


class VoteCreate(CamelModel):
    option_id: int
    subject_id: str = Field(min_length=1, validation_alias=AliasChoices("subjectId", "userId", "subject_id"))


class EventStats(CamelModel):
    total_events: int
    active_events: int
    total_attendees: int
    total_polls: int
