"""Elapsed-time clock for the active session.

The clock only stores the anchor instant. Elapsed time is always recomputed as
``now - anchor``, so ticks that never arrive (suspended process, closed tab)
cannot make the displayed time drift.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Callable
from datetime import UTC, datetime

import structlog

logger = structlog.get_logger(__name__)

Listener = Callable[[int], None]


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def format_elapsed(seconds: int) -> str:
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class ElapsedClock:
    def __init__(self, now: Callable[[], datetime] = utcnow):
        self._now = now
        self._anchor: datetime | None = None
        self._listeners: list[Listener] = []

    @property
    def anchor(self) -> datetime | None:
        return self._anchor

    def anchor_at(self, instant: datetime) -> None:
        self._anchor = as_utc(instant)

    def anchor_now(self) -> datetime:
        self._anchor = as_utc(self._now())
        return self._anchor

    def clear(self) -> None:
        self._anchor = None

    def elapsed(self) -> int:
        if self._anchor is None:
            return 0
        delta = (as_utc(self._now()) - self._anchor).total_seconds()
        return max(0, math.floor(delta))

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self) -> int:
        elapsed = self.elapsed()
        for listener in list(self._listeners):
            try:
                listener(elapsed)
            except Exception:
                logger.exception("elapsed_listener_failed")
        return elapsed

    async def run(self, interval: float = 1.0) -> None:
        """Republish elapsed time every ``interval`` seconds until cancelled."""
        while True:
            if self._anchor is not None:
                self.publish()
            await asyncio.sleep(interval)
