from datetime import UTC, datetime

import pytest

from active_session_service.schemas import (
    ActiveExercise,
    CachedSessionState,
    ExerciseRef,
    SyncStatus,
    TrackingKind,
    WorkoutSet,
)
from active_session_service.services.session_cache import LocalSessionCache

OFFLINE_KEY = "offline_workout_state"


def _state() -> CachedSessionState:
    return CachedSessionState(
        session_id=12,
        anchor=datetime(2026, 10, 19, 7, 0, tzinfo=UTC),
        active_exercises=[
            ActiveExercise(
                exercise=ExerciseRef(id=3, name="Plank", kind=TrackingKind.DURATION),
                sets=[
                    WorkoutSet(set_number=1, weight="", reps="1:30", is_completed=True, sync_status=SyncStatus.SYNCED),
                    WorkoutSet(set_number=2, reps="45s", sync_status=SyncStatus.FAILED),
                ],
            )
        ],
    )


@pytest.mark.asyncio
async def test_save_then_load(cache, redis):
    state = _state()
    await cache.save(state)

    assert await redis.ttl(cache.key) == -1
    assert await cache.load() == state


@pytest.mark.asyncio
async def test_save_overwrites_single_slot(cache, redis):
    await cache.save(_state())
    await cache.save(CachedSessionState(session_id=13, anchor=datetime(2026, 10, 19, 8, 0, tzinfo=UTC)))

    assert await redis.keys("*") == [cache.key]
    assert (await cache.load()).session_id == 13


@pytest.mark.asyncio
async def test_load_missing(cache):
    assert await cache.load() is None


@pytest.mark.asyncio
async def test_corrupt_record_is_dropped(cache, redis):
    await redis.set(cache.key, '{"session_id": "not-a-number"')

    assert await cache.load() is None
    assert await redis.exists(cache.key) == 0


@pytest.mark.asyncio
async def test_clear(cache, redis):
    await cache.save(_state())
    await cache.clear()
    assert await redis.exists(cache.key) == 0


@pytest.mark.asyncio
async def test_without_redis_everything_is_noop():
    async def no_redis():
        return None

    cache = LocalSessionCache(get_redis=no_redis, key=OFFLINE_KEY)
    await cache.save(_state())
    await cache.clear()
    assert await cache.load() is None


@pytest.mark.asyncio
async def test_redis_errors_are_not_raised():
    class BrokenRedis:
        async def get(self, key):
            raise ConnectionError("redis down")

        async def set(self, key, value):
            raise ConnectionError("redis down")

        async def delete(self, key):
            raise ConnectionError("redis down")

    async def broken():
        return BrokenRedis()

    cache = LocalSessionCache(get_redis=broken, key=OFFLINE_KEY)
    await cache.save(_state())
    await cache.clear()
    assert await cache.load() is None
