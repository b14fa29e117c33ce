from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from app.models.room import utcnow


@dataclass
class Connection:
    id: str
    subject_id: str | None = None
    rooms: set[str] = field(default_factory=set)
    connected_at: datetime = field(default_factory=utcnow)
