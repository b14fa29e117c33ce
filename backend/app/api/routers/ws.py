from __future__ import annotations

import asyncio
import json
import uuid
from contextlib import suppress

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status

from app.api.deps import get_ws_coordinator
from app.core.errors import InvalidPayload
from app.core.logging_config import get_logger
from app.services.coordinator import Coordinator

logger = get_logger(__name__)

router = APIRouter(tags=["realtime"])


async def _pump(websocket: WebSocket, queue: asyncio.Queue[str], connection_id: str) -> None:
    """Drain a connection's outbound queue onto its socket."""
    try:
        while True:
            message = await queue.get()
            await websocket.send_text(message)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.debug(f"Writer for connection {connection_id} stopped: {e}")


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    subject: str | None = Query(default=None),
    coordinator: Coordinator = Depends(get_ws_coordinator),
):
    """One socket per participant; rooms are addressed per frame.

    Query parameters:
    - subject: verified subject id issued by the identity provider
    """
    if not subject or not subject.strip():
        logger.info("WebSocket connection rejected: missing subject")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Missing subject")
        return

    await websocket.accept()
    connection_id = uuid.uuid4().hex
    queue = coordinator.connect(connection_id, subject.strip())
    writer = asyncio.create_task(_pump(websocket, queue, connection_id))

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
            data = message.get("text")
            if data is None:
                coordinator.report(connection_id, InvalidPayload("Binary frames are not supported"))
                continue
            try:
                frame = json.loads(data)
            except json.JSONDecodeError:
                coordinator.report(connection_id, InvalidPayload("Frame is not valid JSON"))
                continue
            try:
                coordinator.handle(connection_id, frame)
            except Exception as e:
                logger.error(f"Error handling frame from connection {connection_id}: {e}", exc_info=True)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for connection {connection_id}")
    finally:
        writer.cancel()
        with suppress(asyncio.CancelledError):
            await writer
        coordinator.disconnect(connection_id)
