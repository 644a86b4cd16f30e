from datetime import datetime

from pydantic import BaseModel, Field

from .ledger import ActiveExercise
from .session import SessionState


class CachedSessionState(BaseModel):
    """The single record kept in the local session cache."""

    session_id: int
    active_exercises: list[ActiveExercise] = Field(default_factory=list)
    anchor: datetime | None = None


class RestTimerState(BaseModel):
    running: bool
    remaining_seconds: int
    target_seconds: int
    step_seconds: int


class SessionStateResponse(BaseModel):
    state: SessionState
    session_id: int | None = None
    elapsed_seconds: int = 0
    elapsed_display: str = "00:00"
    anchor: datetime | None = None
    active_exercises: list[ActiveExercise] = Field(default_factory=list)
    rest_timer: RestTimerState


class ElapsedResponse(BaseModel):
    elapsed_seconds: int
    elapsed_display: str


class AddExerciseRequest(BaseModel):
    exercise_id: int


class SetValuesUpdate(BaseModel):
    weight: str | None = None
    reps: str | None = None


class SetNoteUpdate(BaseModel):
    note: str = ""


class RestTimerAdjust(BaseModel):
    delta_seconds: int | None = None
    direction: int = Field(default=1, description="+1 adds one step, -1 removes one step")


class RestTimerTarget(BaseModel):
    seconds: int = Field(ge=0)
