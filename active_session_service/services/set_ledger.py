"""In-memory working copy of the session's sets, grouped per exercise."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from ..exceptions import NoActiveSessionException, RemoteGatewayError, SetNotFoundException
from ..metrics import SET_WRITE_FAILURES_TOTAL, SET_WRITES_TOTAL
from ..schemas import ActiveExercise, ExerciseRef, PreviousStats, SyncStatus, WorkoutSet
from .normalization import format_number, normalize_set
from .persistence_client import PersistenceGateway

logger = structlog.get_logger(__name__)

SetKey = tuple[int, int, int]


class SetLedger:
    """
    Ordered per-exercise set lists with optimistic, fire-and-forget writes.

    Local state always changes first and synchronously. A set gets a remote
    row on its first completion (an upsert on the natural key); later writes
    for the same key are upserts or partial patches against that row. Writes
    run as background tasks and record their outcome in ``sync_status``.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        on_set_completed: Callable[[], None] | None = None,
        patch_on_uncomplete: bool = False,
    ):
        self.gateway = gateway
        self.on_set_completed = on_set_completed
        self.patch_on_uncomplete = patch_on_uncomplete
        self.session_id: int | None = None
        self.exercises: list[ActiveExercise] = []
        self._tasks: set[asyncio.Task] = set()
        self._latest: dict[SetKey, int] = {}
        self._seq = itertools.count(1)

    def reset(self, session_id: int | None = None, exercises: list[ActiveExercise] | None = None) -> None:
        self.session_id = session_id
        self.exercises = list(exercises or [])
        self._latest.clear()

    # lookups

    def find(self, exercise_id: int) -> int | None:
        for index, active in enumerate(self.exercises):
            if active.exercise_id == exercise_id:
                return index
        return None

    def exercise_at(self, exercise_index: int) -> ActiveExercise:
        if not 0 <= exercise_index < len(self.exercises):
            raise SetNotFoundException(exercise_index)
        return self.exercises[exercise_index]

    def set_at(self, exercise_index: int, set_index: int) -> WorkoutSet:
        active = self.exercise_at(exercise_index)
        if not 0 <= set_index < len(active.sets):
            raise SetNotFoundException(exercise_index, set_index)
        return active.sets[set_index]

    def _require_session(self) -> int:
        if self.session_id is None:
            raise NoActiveSessionException()
        return self.session_id

    # local edits

    def add_exercise(self, exercise: ExerciseRef, previous_stats: PreviousStats | None = None) -> int:
        existing = self.find(exercise.id)
        if existing is not None:
            logger.info("exercise_already_active", exercise_id=exercise.id, index=existing)
            return existing
        self.exercises.append(
            ActiveExercise(
                exercise=exercise,
                sets=[WorkoutSet(set_number=1)],
                previous_stats=previous_stats,
            )
        )
        return len(self.exercises) - 1

    def add_set(self, exercise_index: int) -> WorkoutSet:
        active = self.exercise_at(exercise_index)
        weight, reps = "", ""
        previous = active.sets[-1] if active.sets else None
        if previous is not None and previous.has_values:
            weight, reps = previous.weight, previous.reps
        elif active.previous_stats is not None:
            weight = format_number(active.previous_stats.weight)
            reps = format_number(active.previous_stats.reps)

        new_set = WorkoutSet(set_number=len(active.sets) + 1, weight=weight, reps=reps)
        active.sets.append(new_set)
        return new_set

    def update_weight(self, exercise_index: int, set_index: int, value: str) -> WorkoutSet:
        workout_set = self.set_at(exercise_index, set_index)
        workout_set.weight = "" if value is None else str(value)
        return workout_set

    def update_reps(self, exercise_index: int, set_index: int, value: str) -> WorkoutSet:
        workout_set = self.set_at(exercise_index, set_index)
        workout_set.reps = "" if value is None else str(value)
        return workout_set

    # edits with remote effects

    def toggle_completion(self, exercise_index: int, set_index: int) -> asyncio.Task | None:
        session_id = self._require_session()
        self.gateway.ensure_owner()
        active = self.exercise_at(exercise_index)
        workout_set = self.set_at(exercise_index, set_index)

        completing = not workout_set.is_completed
        payload = normalize_set(workout_set, active.exercise.kind, is_completed=True) if completing else None
        workout_set.is_completed = completing

        if completing:
            task = self._schedule(
                "upsert",
                (session_id, active.exercise_id, workout_set.set_number),
                workout_set,
                lambda: self.gateway.upsert_set(session_id, active.exercise_id, workout_set.set_number, payload),
            )
            if self.on_set_completed is not None:
                try:
                    self.on_set_completed()
                except Exception:
                    logger.exception("set_completed_hook_failed")
            return task

        if self.patch_on_uncomplete and workout_set.sync_status != SyncStatus.LOCAL:
            return self._schedule(
                "patch",
                (session_id, active.exercise_id, workout_set.set_number),
                workout_set,
                lambda: self.gateway.patch_set(
                    session_id, active.exercise_id, workout_set.set_number, {"is_completed": False}
                ),
            )
        return None

    def set_note(self, exercise_index: int, set_index: int, note: str) -> asyncio.Task | None:
        active = self.exercise_at(exercise_index)
        workout_set = self.set_at(exercise_index, set_index)
        workout_set.note = note

        if not workout_set.is_completed or self.session_id is None:
            return None

        session_id = self.session_id
        self.gateway.ensure_owner()
        return self._schedule(
            "patch",
            (session_id, active.exercise_id, workout_set.set_number),
            workout_set,
            lambda: self.gateway.patch_set(
                session_id, active.exercise_id, workout_set.set_number, {"is_completed": True, "note": note}
            ),
        )

    # background writes

    def _schedule(
        self,
        kind: str,
        key: SetKey,
        workout_set: WorkoutSet,
        call: Callable[[], Awaitable[Any]],
    ) -> asyncio.Task:
        seq = next(self._seq)
        self._latest[key] = seq
        workout_set.sync_status = SyncStatus.PENDING
        return self.track(asyncio.create_task(self._write(kind, key, seq, workout_set, call)))

    def track(self, task: asyncio.Future) -> asyncio.Future:
        """Hold a strong reference to ``task`` until it is done."""
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _write(
        self,
        kind: str,
        key: SetKey,
        seq: int,
        workout_set: WorkoutSet,
        call: Callable[[], Awaitable[Any]],
    ) -> bool:
        session_id, exercise_id, set_number = key
        SET_WRITES_TOTAL.labels(kind=kind).inc()
        try:
            await call()
        except RemoteGatewayError as exc:
            SET_WRITE_FAILURES_TOTAL.labels(kind=kind).inc()
            logger.warning(
                "set_write_failed",
                kind=kind,
                session_id=session_id,
                exercise_id=exercise_id,
                set_number=set_number,
                status_code=exc.status_code,
                error=exc.error,
            )
            ok = False
        except Exception:
            SET_WRITE_FAILURES_TOTAL.labels(kind=kind).inc()
            logger.exception(
                "set_write_crashed",
                kind=kind,
                session_id=session_id,
                exercise_id=exercise_id,
                set_number=set_number,
            )
            ok = False
        else:
            logger.debug(
                "set_write_succeeded",
                kind=kind,
                session_id=session_id,
                exercise_id=exercise_id,
                set_number=set_number,
            )
            ok = True

        if self._latest.get(key) == seq:
            workout_set.sync_status = SyncStatus.SYNCED if ok else SyncStatus.FAILED
            del self._latest[key]
        return ok

    @property
    def pending_writes(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight write to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
