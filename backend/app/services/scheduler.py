from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol

from app.models.room import Cancellable


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Cancellable: ...


class LoopScheduler:
    """Runs callbacks on the running event loop, interleaved with inbound events."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, callback, *args)
