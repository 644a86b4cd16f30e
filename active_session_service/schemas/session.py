from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class SessionState(str, Enum):
    NO_SESSION = "no_session"
    LOADING = "loading"
    ACTIVE = "active"
    FINISHED = "finished"


class RemoteSet(BaseModel):
    exercise_id: int
    exercise_name: str | None = None
    exercise_type: str | None = None
    set_number: int
    weight_kg: float | None = None
    reps: int | None = None
    time_in_seconds: int | None = None
    is_completed: bool = False
    note: str | None = None


class SessionDetail(BaseModel):
    id: int
    start_time: datetime
    end_time: datetime | None = None
    duration: int | None = None
    notes: str | None = None
    sets: list[RemoteSet] = Field(default_factory=list)


class SetWrite(BaseModel):
    weight_kg: float = 0.0
    reps: int | None = None
    time_in_seconds: int | None = None
    is_completed: bool = True
    note: str | None = None


class StartRequest(BaseModel):
    routine_id: int | None = None


class FinishRequest(BaseModel):
    duration_seconds: int | None = Field(default=None, ge=0)


class FinishResult(BaseModel):
    session_id: int
    duration_seconds: int
    end_time: datetime
