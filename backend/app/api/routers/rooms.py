from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from app.api.deps import get_coordinator
from app.models.room import RoomKind
from app.schemas.rooms import AttendanceRead, RoomRead, RoomSummary
from app.services.coordinator import Coordinator

router = APIRouter(prefix="/api", tags=["rooms"])


@router.get("/rooms", response_model=list[RoomSummary], response_model_by_alias=True)
async def list_rooms(kind: RoomKind | None = None, coordinator: Coordinator = Depends(get_coordinator)):
    return coordinator.summaries(kind)


@router.get("/rooms/{room_id}", response_model=RoomRead, response_model_by_alias=True)
async def room_detail(room_id: str, coordinator: Coordinator = Depends(get_coordinator)):
    room = coordinator.rooms.require(room_id)
    return RoomRead.model_validate(room)


@router.get("/session/{room_id}/attendance", response_model=list[AttendanceRead], response_model_by_alias=True)
async def session_attendance(room_id: str, coordinator: Coordinator = Depends(get_coordinator)):
    room = coordinator.rooms.require(room_id)
    return [AttendanceRead.model_validate(record) for record in room.attendance]


@router.get("/session/{room_id}/feedback")
async def session_feedback(room_id: str, coordinator: Coordinator = Depends(get_coordinator)) -> list[dict[str, Any]]:
    room = coordinator.rooms.require(room_id)
    return list(room.feedback)


@router.get("/session/{room_id}/notes")
async def session_notes(room_id: str, coordinator: Coordinator = Depends(get_coordinator)) -> list[dict[str, Any]]:
    room = coordinator.rooms.require(room_id)
    return list(room.notes)


@router.get("/session/{room_id}/results")
async def session_results(room_id: str, coordinator: Coordinator = Depends(get_coordinator)) -> list[dict[str, Any]]:
    room = coordinator.rooms.require(room_id)
    return list(room.test_results)
