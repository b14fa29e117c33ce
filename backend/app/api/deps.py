from __future__ import annotations

from fastapi import Request, WebSocket

from app.services.coordinator import Coordinator


def get_coordinator(request: Request) -> Coordinator:
    return request.app.state.coordinator


def get_ws_coordinator(websocket: WebSocket) -> Coordinator:
    return websocket.app.state.coordinator
