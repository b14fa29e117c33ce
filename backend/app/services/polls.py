from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Sequence

from app.core.errors import (
    AlreadyVoted,
    InvalidOption,
    InvalidPayload,
    NotRoomHost,
    PollNotActive,
    PollNotFound,
    RoomNotActive,
)
from app.core.logging_config import get_logger
from app.models.room import Poll, PollOption, Room, RoomKind, RoomStatus, utcnow
from app.schemas.messages import OutboundEvent
from app.schemas.rooms import PollRead
from app.services.broadcast import BroadcastRouter
from app.services.rooms import RoomRegistry
from app.services.scheduler import Scheduler

logger = get_logger(__name__)

DEFAULT_POLL_SECONDS = 60
MAX_POLL_SECONDS = 3600


def serialize_poll(poll: Poll) -> dict:
    return PollRead.model_validate(poll).dump()


class PollEngine:
    """Timed polls stored on their room; the room is the only owner of a poll."""

    def __init__(
        self,
        rooms: RoomRegistry,
        router: BroadcastRouter,
        scheduler: Scheduler,
        default_duration: int = DEFAULT_POLL_SECONDS,
        max_duration: int = MAX_POLL_SECONDS,
    ) -> None:
        self.rooms = rooms
        self.router = router
        self.scheduler = scheduler
        self.default_duration = default_duration
        self.max_duration = max_duration
        self._poll_rooms: dict[str, str] = {}

    def create(
        self,
        room_id: str,
        question: str,
        options: Sequence[str],
        duration_seconds: int | None = None,
    ) -> Poll:
        room = self.rooms.require(room_id)
        if room.status is RoomStatus.ENDED:
            raise RoomNotActive(room_id=room_id)

        question = (question or "").strip()
        texts = [str(option).strip() for option in options or []]
        if not question or len(texts) < 2 or not all(texts):
            raise InvalidPayload("A poll needs a question and at least two non-empty options")
        duration = self.default_duration if duration_seconds is None else duration_seconds
        if duration < 1 or duration > self.max_duration:
            raise InvalidPayload(f"Poll duration must be between 1 and {self.max_duration} seconds")

        now = utcnow()
        poll = Poll(
            id=f"POLL-{uuid.uuid4().hex[:12].upper()}",
            room_id=room.id,
            question=question,
            options=[PollOption(id=index, text=text) for index, text in enumerate(texts)],
            duration_seconds=duration,
            created_at=now,
            expires_at=now + timedelta(seconds=duration),
        )
        room.polls[poll.id] = poll
        self._poll_rooms[poll.id] = room.id
        poll.expiry_handle = self.scheduler.call_later(duration, self._expire, room.id, poll.id)
        logger.info(f"Poll {poll.id} started in room {room.id} for {duration}s")

        self.router.send_to(room, OutboundEvent.POLL_STARTED, {"poll": serialize_poll(poll)})
        return poll

    def get(self, poll_id: str) -> Poll:
        room = self._room_of(poll_id)
        poll = room.polls.get(poll_id) if room else None
        if poll is None:
            self._poll_rooms.pop(poll_id, None)
            raise PollNotFound(poll_id=poll_id)
        return poll

    def vote(self, poll_id: str, option_id: int, subject_id: str, voter_connection_id: str | None = None) -> Poll:
        if not subject_id:
            raise InvalidPayload("A vote needs a subject id")
        poll = self.get(poll_id)
        if not poll.is_active:
            raise PollNotActive(poll_id=poll_id)
        if poll.has_voted(subject_id):
            raise AlreadyVoted(poll_id=poll_id)
        if not 0 <= option_id < len(poll.options):
            raise InvalidOption(poll_id=poll_id, option_id=option_id)

        option = poll.options[option_id]
        option.votes += 1
        option.voters.append(subject_id)
        poll.total_votes += 1
        logger.debug(f"Vote on poll {poll_id} option {option_id} by {subject_id}")

        room = self.rooms.get(poll.room_id)
        if room is not None and room.kind is RoomKind.EVENT:
            delta = {
                "pollId": poll.id,
                "optionId": option_id,
                "subjectId": subject_id,
                "totalVotes": poll.total_votes,
            }
            self.router.send_to(room, OutboundEvent.POLL_VOTE, delta, exclude=voter_connection_id)
        return poll

    def end(self, poll_id: str, actor_id: str | None = None) -> Poll:
        poll = self.get(poll_id)
        room = self.rooms.require(poll.room_id)
        if room.kind is not RoomKind.EVENT:
            raise InvalidPayload("Only event polls can be ended early", poll_id=poll_id)
        if actor_id is not None and not room.is_host(actor_id):
            raise NotRoomHost(room_id=room.id)
        if not poll.close():
            raise PollNotActive(poll_id=poll_id)
        logger.info(f"Poll {poll_id} ended by host in room {room.id}")
        self._announce_end(room, poll)
        return poll

    def close_all(self, room: Room) -> list[Poll]:
        closed = [poll for poll in room.polls.values() if poll.close()]
        for poll in closed:
            self._announce_end(room, poll)
        return closed

    def forget_room(self, room: Room) -> None:
        """Drop index entries for a room that is being deleted."""
        for poll_id in room.polls:
            self._poll_rooms.pop(poll_id, None)

    def _expire(self, room_id: str, poll_id: str) -> None:
        try:
            room = self.rooms.get(room_id)
            poll = room.polls.get(poll_id) if room else None
            if poll is None:
                self._poll_rooms.pop(poll_id, None)
                logger.debug(f"Expiry for poll {poll_id} found nothing to close")
                return
            poll.expiry_handle = None
            if poll.close():
                logger.info(f"Poll {poll_id} expired in room {room_id}")
                self._announce_end(room, poll)
        except Exception:
            logger.exception(f"Failed to expire poll {poll_id} in room {room_id}")

    def _announce_end(self, room: Room, poll: Poll) -> None:
        self.router.send_to(room, OutboundEvent.POLL_ENDED, {"pollId": poll.id, "poll": serialize_poll(poll)})

    def _room_of(self, poll_id: str) -> Room | None:
        room_id = self._poll_rooms.get(poll_id)
        return self.rooms.get(room_id) if room_id else None
