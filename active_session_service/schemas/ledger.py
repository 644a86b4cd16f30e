import uuid
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class TrackingKind(str, Enum):
    REPS = "reps"
    DURATION = "duration"

    @classmethod
    def from_catalog(cls, value: str | None) -> "TrackingKind":
        # Catalog rows use "strength"/"cardio" for repetition-based exercises.
        if value and value.strip().lower() == "duration":
            return cls.DURATION
        return cls.REPS


class SyncStatus(str, Enum):
    LOCAL = "local"
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


class ExerciseRef(BaseModel):
    id: int
    name: str
    kind: TrackingKind = TrackingKind.REPS

    @field_validator("kind", mode="before")
    @classmethod
    def _coerce_kind(cls, value):
        if isinstance(value, TrackingKind):
            return value
        return TrackingKind.from_catalog(value)


class PreviousStats(BaseModel):
    weight: float | None = None
    reps: int | None = None


class WorkoutSet(BaseModel):
    set_number: int = Field(ge=1)
    weight: str = ""
    reps: str = ""
    is_completed: bool = False
    note: str | None = None
    sync_status: SyncStatus = SyncStatus.LOCAL

    @property
    def has_values(self) -> bool:
        return bool(self.weight.strip() or self.reps.strip())


class ActiveExercise(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    exercise: ExerciseRef
    sets: list[WorkoutSet] = Field(default_factory=list)
    previous_stats: PreviousStats | None = None

    @property
    def exercise_id(self) -> int:
        return self.exercise.id
