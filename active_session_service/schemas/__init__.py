# This file makes the schemas directory a Python package

from .ledger import (
    ActiveExercise,
    ExerciseRef,
    PreviousStats,
    SyncStatus,
    TrackingKind,
    WorkoutSet,
)
from .session import (
    FinishRequest,
    FinishResult,
    RemoteSet,
    SessionDetail,
    SessionState,
    SetWrite,
    StartRequest,
)
from .state import (
    AddExerciseRequest,
    CachedSessionState,
    ElapsedResponse,
    RestTimerAdjust,
    RestTimerState,
    RestTimerTarget,
    SessionStateResponse,
    SetNoteUpdate,
    SetValuesUpdate,
)
