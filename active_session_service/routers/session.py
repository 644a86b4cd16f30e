import structlog
from fastapi import APIRouter, Depends, status

from .. import schemas as sm
from ..dependencies import get_synchronizer
from ..services.session_synchronizer import SessionSynchronizer
from ..services.timer import format_elapsed

router = APIRouter(prefix="/session")

logger = structlog.get_logger(__name__)


@router.get("", response_model=sm.SessionStateResponse)
async def get_session_state(synchronizer: SessionSynchronizer = Depends(get_synchronizer)):
    return synchronizer.snapshot()


@router.post("/start", response_model=sm.SessionStateResponse, status_code=status.HTTP_201_CREATED)
async def start_session(
    payload: sm.StartRequest | None = None,
    synchronizer: SessionSynchronizer = Depends(get_synchronizer),
):
    routine_id = payload.routine_id if payload else None
    logger.info("workout_session_start_requested", routine_id=routine_id)
    await synchronizer.start(routine_id)
    return synchronizer.snapshot()


@router.post("/resume/{session_id}", response_model=sm.SessionStateResponse)
async def resume_session(session_id: int, synchronizer: SessionSynchronizer = Depends(get_synchronizer)):
    logger.info("workout_session_resume_requested", requested_session_id=session_id)
    await synchronizer.resume(session_id)
    return synchronizer.snapshot()


@router.post("/exercises", response_model=sm.SessionStateResponse, status_code=status.HTTP_201_CREATED)
async def add_exercise(
    payload: sm.AddExerciseRequest,
    synchronizer: SessionSynchronizer = Depends(get_synchronizer),
):
    await synchronizer.add_exercise(payload.exercise_id)
    return synchronizer.snapshot()


@router.post(
    "/exercises/{exercise_index}/sets",
    response_model=sm.SessionStateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_set(exercise_index: int, synchronizer: SessionSynchronizer = Depends(get_synchronizer)):
    await synchronizer.add_set(exercise_index)
    return synchronizer.snapshot()


@router.patch("/exercises/{exercise_index}/sets/{set_index}", response_model=sm.SessionStateResponse)
async def update_set_values(
    exercise_index: int,
    set_index: int,
    payload: sm.SetValuesUpdate,
    synchronizer: SessionSynchronizer = Depends(get_synchronizer),
):
    if payload.weight is not None:
        await synchronizer.update_weight(exercise_index, set_index, payload.weight)
    if payload.reps is not None:
        await synchronizer.update_reps(exercise_index, set_index, payload.reps)
    return synchronizer.snapshot()


@router.post("/exercises/{exercise_index}/sets/{set_index}/toggle", response_model=sm.SessionStateResponse)
async def toggle_set(
    exercise_index: int,
    set_index: int,
    synchronizer: SessionSynchronizer = Depends(get_synchronizer),
):
    await synchronizer.toggle_completion(exercise_index, set_index)
    return synchronizer.snapshot()


@router.put("/exercises/{exercise_index}/sets/{set_index}/note", response_model=sm.SessionStateResponse)
async def set_note(
    exercise_index: int,
    set_index: int,
    payload: sm.SetNoteUpdate,
    synchronizer: SessionSynchronizer = Depends(get_synchronizer),
):
    await synchronizer.set_note(exercise_index, set_index, payload.note)
    return synchronizer.snapshot()


@router.post("/finish", response_model=sm.FinishResult)
async def finish_session(
    payload: sm.FinishRequest | None = None,
    synchronizer: SessionSynchronizer = Depends(get_synchronizer),
):
    duration = payload.duration_seconds if payload else None
    logger.info("workout_session_finish_requested", client_duration=duration)
    return await synchronizer.finish(duration)


@router.get("/elapsed", response_model=sm.ElapsedResponse)
async def get_elapsed(synchronizer: SessionSynchronizer = Depends(get_synchronizer)):
    elapsed = synchronizer.clock.elapsed() if synchronizer.is_active else 0
    return sm.ElapsedResponse(elapsed_seconds=elapsed, elapsed_display=format_elapsed(elapsed))


@router.get("/rest-timer", response_model=sm.RestTimerState)
async def get_rest_timer(synchronizer: SessionSynchronizer = Depends(get_synchronizer)):
    return synchronizer.rest_timer.snapshot()


@router.post("/rest-timer/adjust", response_model=sm.RestTimerState)
async def adjust_rest_timer(
    payload: sm.RestTimerAdjust,
    synchronizer: SessionSynchronizer = Depends(get_synchronizer),
):
    rest_timer = synchronizer.rest_timer
    if payload.delta_seconds is not None:
        rest_timer.adjust(payload.delta_seconds)
    elif payload.direction < 0:
        rest_timer.decrement()
    else:
        rest_timer.increment()
    return rest_timer.snapshot()


@router.put("/rest-timer/target", response_model=sm.RestTimerState)
async def set_rest_timer_target(
    payload: sm.RestTimerTarget,
    synchronizer: SessionSynchronizer = Depends(get_synchronizer),
):
    synchronizer.rest_timer.set_target(payload.seconds)
    return synchronizer.rest_timer.snapshot()


@router.post("/rest-timer/skip", response_model=sm.RestTimerState)
async def skip_rest_timer(synchronizer: SessionSynchronizer = Depends(get_synchronizer)):
    synchronizer.rest_timer.skip()
    return synchronizer.rest_timer.snapshot()
