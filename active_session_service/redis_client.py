"""Process-wide Redis connection backing the local session cache."""

from __future__ import annotations

from typing import Optional

import structlog
from redis.asyncio import Redis

from .config import Settings, get_settings

logger = structlog.get_logger(__name__)

redis_client: Optional[Redis] = None


def active_session_key() -> str:
    return get_settings().SESSION_CACHE_KEY


def _build_client(settings: Settings) -> Redis:
    options = {"encoding": "utf-8", "decode_responses": True, "health_check_interval": 30}
    if settings.SESSION_REDIS_URL:
        return Redis.from_url(settings.SESSION_REDIS_URL, **options)
    return Redis(
        host=settings.SESSION_REDIS_HOST,
        port=settings.SESSION_REDIS_PORT,
        db=settings.SESSION_REDIS_DB,
        password=settings.SESSION_REDIS_PASSWORD,
        **options,
    )


async def init_redis() -> Optional[Redis]:
    """Connect once at startup. Without Redis the session only lives in memory."""
    global redis_client

    settings = get_settings()
    client = _build_client(settings)
    try:
        await client.ping()
    except Exception as exc:
        logger.error("session_redis_unavailable", key=settings.SESSION_CACHE_KEY, error=str(exc))
        await client.aclose()
        redis_client = None
        return None

    redis_client = client
    logger.info(
        "session_redis_connected",
        from_url=bool(settings.SESSION_REDIS_URL),
        host=settings.SESSION_REDIS_HOST,
        db=settings.SESSION_REDIS_DB,
        key=settings.SESSION_CACHE_KEY,
    )
    return redis_client


async def get_redis() -> Optional[Redis]:
    return redis_client


async def close_redis() -> None:
    global redis_client

    client, redis_client = redis_client, None
    if client is None:
        return
    try:
        await client.aclose()
    except Exception as exc:
        logger.warning("session_redis_close_failed", error=str(exc))
