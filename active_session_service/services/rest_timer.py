"""Advisory rest countdown started when a set is completed."""

from __future__ import annotations

import math
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from ..schemas import RestTimerState
from .timer import as_utc, utcnow

logger = structlog.get_logger(__name__)


class RestTimer:
    def __init__(
        self,
        target_seconds: int = 60,
        step_seconds: int = 30,
        now: Callable[[], datetime] = utcnow,
    ):
        self._now = now
        self.target_seconds = max(0, int(target_seconds))
        self.step_seconds = max(1, int(step_seconds))
        self._ends_at: datetime | None = None

    @property
    def running(self) -> bool:
        return self._ends_at is not None and self.remaining() > 0

    def start(self) -> None:
        self._ends_at = as_utc(self._now()) + timedelta(seconds=self.target_seconds)
        logger.debug("rest_timer_started", target_seconds=self.target_seconds)

    def remaining(self) -> int:
        if self._ends_at is None:
            return 0
        left = (self._ends_at - as_utc(self._now())).total_seconds()
        return max(0, math.ceil(left))

    def adjust(self, delta_seconds: int) -> int:
        if self._ends_at is None:
            return 0
        now = as_utc(self._now())
        ends_at = self._ends_at + timedelta(seconds=delta_seconds)
        self._ends_at = max(ends_at, now)
        return self.remaining()

    def increment(self) -> int:
        return self.adjust(self.step_seconds)

    def decrement(self) -> int:
        return self.adjust(-self.step_seconds)

    def set_target(self, seconds: int) -> None:
        self.target_seconds = max(0, int(seconds))
        logger.info("rest_timer_target_changed", target_seconds=self.target_seconds)

    def skip(self) -> None:
        self._ends_at = None

    def on_set_completed(self) -> None:
        try:
            self.start()
        except Exception:
            logger.exception("rest_timer_start_failed")

    def snapshot(self) -> RestTimerState:
        return RestTimerState(
            running=self.running,
            remaining_seconds=self.remaining(),
            target_seconds=self.target_seconds,
            step_seconds=self.step_seconds,
        )
