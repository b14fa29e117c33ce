from __future__ import annotations

from fastapi import status
from pydantic.alias_generators import to_camel


class CoordinationError(Exception):
    """Recoverable failure reported only to the acting connection or caller."""

    code = "CoordinationError"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None, **details) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"code": self.code, "message": self.message, **{to_camel(k): v for k, v in self.details.items()}}


class RoomNotFound(CoordinationError):
    code = "RoomNotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Room not found"


class RoomNotActive(CoordinationError):
    code = "RoomNotActive"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Room is not active"


class PollNotFound(CoordinationError):
    code = "PollNotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Poll not found"


class PollNotActive(CoordinationError):
    code = "PollNotActive"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Poll is not active"


class AlreadyVoted(CoordinationError):
    code = "AlreadyVoted"
    status_code = status.HTTP_409_CONFLICT
    default_message = "User already voted"


class InvalidOption(CoordinationError):
    code = "InvalidOption"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Invalid option"


class InvalidPayload(CoordinationError):
    code = "InvalidPayload"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Malformed or missing fields"


class NotRoomHost(CoordinationError):
    code = "NotRoomHost"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Only the host can do this"


class JoinRequestNotFound(CoordinationError):
    code = "JoinRequestNotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "No pending join request for this connection"


class JoinNotApproved(CoordinationError):
    code = "JoinNotApproved"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Join request has not been approved"
