from __future__ import annotations

from typing import Any

from app.core.logging_config import get_logger
from app.schemas.messages import OutboundEvent, server_event
from app.services.connections import ConnectionRegistry
from app.services.events import ConnectionHub

logger = get_logger(__name__)

SIGNAL_EVENTS = {
    "signal-offer": OutboundEvent.OFFER,
    "signal-answer": OutboundEvent.ANSWER,
    "signal-ice": OutboundEvent.ICE_CANDIDATE,
    "offer": OutboundEvent.OFFER,
    "answer": OutboundEvent.ANSWER,
    "ice-candidate": OutboundEvent.ICE_CANDIDATE,
}


class SignalingRelay:
    """Point-to-point forwarding of opaque WebRTC negotiation payloads."""

    def __init__(self, connections: ConnectionRegistry, hub: ConnectionHub) -> None:
        self.connections = connections
        self.hub = hub

    def relay(self, kind: str, from_connection_id: str, to_connection_id: str, payload: Any) -> bool:
        event = SIGNAL_EVENTS[kind]
        if not self.connections.exists(to_connection_id):
            logger.debug(f"Dropping {event.value} from {from_connection_id}: target {to_connection_id} is gone")
            return False
        message = server_event(event, {"payload": payload, "fromConnectionId": from_connection_id})
        delivered = self.hub.deliver(to_connection_id, message)
        logger.debug(f"Relayed {event.value} from {from_connection_id} to {to_connection_id}")
        return delivered
