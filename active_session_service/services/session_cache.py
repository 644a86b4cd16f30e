"""Single-slot durable cache for the active session."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from pydantic import ValidationError

from ..metrics import (
    SESSION_CACHE_ERRORS_TOTAL,
    SESSION_CACHE_HITS_TOTAL,
    SESSION_CACHE_MISSES_TOTAL,
)
from ..redis_client import active_session_key, get_redis
from ..schemas import CachedSessionState

logger = structlog.get_logger(__name__)


class LocalSessionCache:
    """
    Keeps exactly one ``CachedSessionState`` under a fixed Redis key.

    Writes overwrite the whole record, finishing deletes it. The record has no
    TTL: a workout left open overnight must still resume. Redis being down
    never raises into callers; the session then simply does not survive a
    restart.
    """

    def __init__(
        self,
        get_redis: Callable[[], Awaitable[Any]] = get_redis,
        key: str | None = None,
    ):
        self._get_redis = get_redis
        self._key = key or active_session_key()

    @property
    def key(self) -> str:
        return self._key

    async def load(self) -> CachedSessionState | None:
        redis = await self._get_redis()
        if not redis:
            return None
        try:
            raw = await redis.get(self._key)
        except Exception:
            SESSION_CACHE_ERRORS_TOTAL.inc()
            logger.warning("session_cache_get_failed", key=self._key, exc_info=True)
            return None

        if not raw:
            SESSION_CACHE_MISSES_TOTAL.inc()
            return None

        try:
            state = CachedSessionState.model_validate_json(raw)
        except ValidationError:
            SESSION_CACHE_ERRORS_TOTAL.inc()
            logger.warning("session_cache_corrupt_dropped", key=self._key, exc_info=True)
            await self.clear()
            return None

        SESSION_CACHE_HITS_TOTAL.inc()
        return state

    async def save(self, state: CachedSessionState) -> None:
        redis = await self._get_redis()
        if not redis:
            return
        try:
            await redis.set(self._key, state.model_dump_json())
        except Exception:
            SESSION_CACHE_ERRORS_TOTAL.inc()
            logger.warning("session_cache_set_failed", key=self._key, exc_info=True)

    async def clear(self) -> None:
        redis = await self._get_redis()
        if not redis:
            return
        try:
            await redis.delete(self._key)
        except Exception:
            SESSION_CACHE_ERRORS_TOTAL.inc()
            logger.warning("session_cache_delete_failed", key=self._key, exc_info=True)
