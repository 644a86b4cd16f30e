from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PERSISTENCE_API_URL: str = "http://persistence-api:8000/api/v1"
    PERSISTENCE_API_TIMEOUT_SECONDS: float = 5.0
    SESSION_REDIS_URL: str | None = None
    SESSION_REDIS_HOST: str = "redis"
    SESSION_REDIS_PORT: int = 6379
    SESSION_REDIS_DB: int = 0
    SESSION_REDIS_PASSWORD: str | None = None
    SESSION_CACHE_KEY: str = "ironpath_workout_state"
    DEVICE_USER_ID: str | None = None
    REST_TIMER_DEFAULT_SECONDS: int = 60
    REST_TIMER_STEP_SECONDS: int = 30
    TIMER_TICK_SECONDS: float = 1.0
    PATCH_ON_UNCOMPLETE: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
