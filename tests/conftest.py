import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from fakeredis import aioredis

SERVICE_ROOT = Path(__file__).resolve().parents[1]
if str(SERVICE_ROOT) not in sys.path:
    sys.path.insert(0, str(SERVICE_ROOT))

from fake_persistence import BASE_URL, OWNER, FakePersistence  # noqa: E402

CACHE_KEY = "test_workout_state"


class FakeNow:
    """Controllable wall clock; ``advance`` simulates time passing while suspended."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 10, 19, 7, 30, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture()
def now() -> FakeNow:
    return FakeNow()


@pytest.fixture()
def persistence() -> FakePersistence:
    fake = FakePersistence()
    fake.add_exercise(1, "Bench Press")
    fake.add_exercise(2, "Squat")
    fake.add_exercise(3, "Plank", "duration")
    return fake


@pytest.fixture()
def redis():
    return aioredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def cache(redis):
    from active_session_service.services.session_cache import LocalSessionCache

    async def get_redis():
        return redis

    return LocalSessionCache(get_redis=get_redis, key=CACHE_KEY)


@pytest.fixture()
def gateway(persistence):
    from active_session_service.services.persistence_client import PersistenceGateway

    return PersistenceGateway(base_url=BASE_URL, owner_id=OWNER, transport=persistence.transport())


@pytest.fixture()
def synchronizer(gateway, cache, now):
    from active_session_service.services.session_synchronizer import SessionSynchronizer

    return SessionSynchronizer(gateway=gateway, cache=cache, now=now)
