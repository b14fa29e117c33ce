from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api.deps import get_coordinator
from app.core.errors import RoomNotFound
from app.core.logging_config import get_logger
from app.models.room import Room, RoomKind
from app.schemas.rooms import DocumentCreate, DocumentRead, EventCreate, EventCreated, PollCreate, RoomRead, VoteCreate
from app.services.coordinator import Coordinator
from app.services.polls import serialize_poll

logger = get_logger(__name__)

router = APIRouter(prefix="/api/events", tags=["events"])


def _require_event(coordinator: Coordinator, event_id: str) -> Room:
    room = coordinator.rooms.get(event_id)
    if room is None or room.kind is not RoomKind.EVENT:
        raise RoomNotFound(room_id=event_id)
    return room


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_event(payload: EventCreate, coordinator: Coordinator = Depends(get_coordinator)):
    room = coordinator.membership.create_event(
        payload.host_name,
        host_email=payload.host_email,
        title=payload.title,
        description=payload.description,
    )
    share_link = f"{coordinator.config.frontend_url.rstrip('/')}/events/join/{room.id}"
    return EventCreated(event_id=room.id, share_link=share_link).dump()


@router.get("/stats/overview")
async def event_stats(coordinator: Coordinator = Depends(get_coordinator)):
    return {"success": True, "stats": coordinator.event_stats().dump()}


@router.get("/{event_id}")
async def get_event(event_id: str, coordinator: Coordinator = Depends(get_coordinator)):
    room = _require_event(coordinator, event_id)
    return {"success": True, "event": RoomRead.model_validate(room).dump()}


@router.post("/{event_id}/documents")
async def add_document(event_id: str, payload: DocumentCreate, coordinator: Coordinator = Depends(get_coordinator)):
    _require_event(coordinator, event_id)
    document = coordinator.router.share_document(event_id, payload)
    logger.info(f"Document {document.name} registered for event {event_id}")
    return {"success": True, "document": DocumentRead.model_validate(document).dump()}


@router.post("/{event_id}/polls")
async def create_poll(event_id: str, payload: PollCreate, coordinator: Coordinator = Depends(get_coordinator)):
    _require_event(coordinator, event_id)
    poll = coordinator.polls.create(event_id, payload.question, payload.options, payload.duration_seconds)
    return {"success": True, "poll": serialize_poll(poll)}


@router.post("/polls/{poll_id}/vote")
async def vote_poll(poll_id: str, payload: VoteCreate, coordinator: Coordinator = Depends(get_coordinator)):
    poll = coordinator.polls.vote(poll_id, payload.option_id, payload.subject_id)
    return {"success": True, "poll": serialize_poll(poll)}


@router.post("/polls/{poll_id}/end")
async def end_poll(poll_id: str, coordinator: Coordinator = Depends(get_coordinator)):
    poll = coordinator.polls.end(poll_id)
    return {"success": True, "poll": serialize_poll(poll)}
