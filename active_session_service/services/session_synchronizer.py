"""Owner of the active session: start, resume/reconcile, edits and finish."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

import structlog

from ..config import get_settings
from ..exceptions import (
    ExerciseNotFoundException,
    NoActiveSessionException,
    RemoteGatewayError,
    RemoteUnavailableException,
    UnauthorizedException,
)
from ..logging_config import bind_session
from ..metrics import (
    WORKOUT_SESSIONS_FINISHED_TOTAL,
    WORKOUT_SESSIONS_RESUMED_TOTAL,
    WORKOUT_SESSIONS_STARTED_TOTAL,
)
from ..schemas import (
    ActiveExercise,
    CachedSessionState,
    ExerciseRef,
    FinishResult,
    PreviousStats,
    SessionDetail,
    SessionState,
    SessionStateResponse,
    SyncStatus,
    WorkoutSet,
)
from .normalization import format_number
from .persistence_client import PersistenceGateway
from .rest_timer import RestTimer
from .session_cache import LocalSessionCache
from .set_ledger import SetLedger
from .timer import ElapsedClock, format_elapsed, utcnow

logger = structlog.get_logger(__name__)


class SessionSynchronizer:
    def __init__(
        self,
        gateway: PersistenceGateway,
        cache: LocalSessionCache,
        clock: ElapsedClock | None = None,
        rest_timer: RestTimer | None = None,
        now: Callable[[], datetime] = utcnow,
        patch_on_uncomplete: bool | None = None,
    ):
        settings = get_settings()
        self.gateway = gateway
        self.cache = cache
        self._now = now
        self.clock = clock or ElapsedClock(now=now)
        self.rest_timer = rest_timer or RestTimer(
            target_seconds=settings.REST_TIMER_DEFAULT_SECONDS,
            step_seconds=settings.REST_TIMER_STEP_SECONDS,
            now=now,
        )
        if patch_on_uncomplete is None:
            patch_on_uncomplete = settings.PATCH_ON_UNCOMPLETE
        self.ledger = SetLedger(
            gateway,
            on_set_completed=self.rest_timer.on_set_completed,
            patch_on_uncomplete=patch_on_uncomplete,
        )
        self.state = SessionState.NO_SESSION
        self.session_id: int | None = None
        self._catalog: dict[int, ExerciseRef] | None = None
        self._revision = 0

    # state helpers

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE and self.session_id is not None

    def _require_active(self) -> int:
        if not self.is_active:
            raise NoActiveSessionException()
        return self.session_id  # type: ignore[return-value]

    def _activate(self, session_id: int, exercises: list[ActiveExercise], anchor: datetime | None) -> None:
        self.session_id = session_id
        self.ledger.reset(session_id, exercises)
        if anchor is None:
            self.clock.anchor_now()
        else:
            self.clock.anchor_at(anchor)
        self.state = SessionState.ACTIVE
        self._revision += 1
        bind_session(session_id)

    async def _reset(self) -> None:
        self._revision += 1
        self.session_id = None
        self.ledger.reset()
        self.clock.clear()
        self.rest_timer.skip()
        self.state = SessionState.NO_SESSION
        bind_session(None)
        await self.cache.clear()

    async def persist(self) -> None:
        """Overwrite the local cache with the current session state."""
        while True:
            revision = self._revision
            if not self.is_active:
                await self.cache.clear()
            else:
                await self.cache.save(
                    CachedSessionState(
                        session_id=self.session_id,
                        active_exercises=self.ledger.exercises,
                        anchor=self.clock.anchor,
                    )
                )
            # A session started or ended while Redis was awaited: write again.
            if revision == self._revision:
                return

    # reconciliation helpers

    async def _previous_stats(self, exercise_id: int) -> PreviousStats | None:
        try:
            return await self.gateway.fetch_previous_stats(exercise_id)
        except RemoteGatewayError as exc:
            logger.warning("previous_stats_fetch_failed", exercise_id=exercise_id, error=str(exc))
            return None

    async def _baselines(self, exercise_ids: list[int]) -> dict[int, PreviousStats | None]:
        results = await asyncio.gather(*(self._previous_stats(eid) for eid in exercise_ids))
        return dict(zip(exercise_ids, results))

    @staticmethod
    def _set_from_remote(remote) -> WorkoutSet:
        value = remote.time_in_seconds if remote.time_in_seconds is not None else remote.reps
        return WorkoutSet(
            set_number=remote.set_number,
            weight=format_number(remote.weight_kg) if remote.weight_kg else "",
            reps=format_number(value) if value else "",
            is_completed=remote.is_completed,
            note=remote.note or None,
            sync_status=SyncStatus.SYNCED,
        )

    @classmethod
    def group_remote_sets(cls, detail: SessionDetail) -> list[ActiveExercise]:
        grouped: dict[int, ActiveExercise] = {}
        for remote in detail.sets:
            active = grouped.get(remote.exercise_id)
            if active is None:
                active = ActiveExercise(
                    exercise=ExerciseRef(
                        id=remote.exercise_id,
                        name=remote.exercise_name or f"Exercise {remote.exercise_id}",
                        kind=remote.exercise_type,
                    ),
                )
                grouped[remote.exercise_id] = active
            active.sets.append(cls._set_from_remote(remote))
        for active in grouped.values():
            active.sets.sort(key=lambda s: s.set_number)
        return list(grouped.values())

    @staticmethod
    def merge_cached(cached: list[ActiveExercise], remote: list[ActiveExercise]) -> list[ActiveExercise]:
        """Cached entries win per natural key; remote-only sets and exercises are added."""
        merged = [active.model_copy(deep=True) for active in cached]
        by_exercise = {active.exercise_id: active for active in merged}
        for remote_active in remote:
            local = by_exercise.get(remote_active.exercise_id)
            if local is None:
                merged.append(remote_active)
                by_exercise[remote_active.exercise_id] = remote_active
                continue
            known = {s.set_number for s in local.sets}
            local.sets.extend(s for s in remote_active.sets if s.set_number not in known)
            local.sets.sort(key=lambda s: s.set_number)
        return merged

    async def _attach_baselines(self, exercises: list[ActiveExercise]) -> None:
        missing = [a.exercise_id for a in exercises if a.previous_stats is None]
        if not missing:
            return
        baselines = await self._baselines(missing)
        for active in exercises:
            if active.previous_stats is None:
                active.previous_stats = baselines.get(active.exercise_id)

    # operations

    async def start(self, routine_id: int | None = None) -> int:
        self.gateway.ensure_owner()
        self.state = SessionState.LOADING
        try:
            session_id = await self.gateway.create_session(routine_id)
        except RemoteGatewayError as exc:
            logger.error("workout_session_start_failed", routine_id=routine_id, error=str(exc))
            await self._reset()
            raise RemoteUnavailableException("start") from exc
        except Exception:
            await self._reset()
            raise

        exercises: list[ActiveExercise] = []
        if routine_id is not None:
            try:
                detail = await self.gateway.fetch_session_detail(session_id)
            except RemoteGatewayError as exc:
                logger.warning("routine_seed_fetch_failed", session_id=session_id, error=str(exc))
                detail = None
            if detail is not None:
                exercises = self.group_remote_sets(detail)
                await self._attach_baselines(exercises)

        self._activate(session_id, exercises, anchor=None)
        await self.persist()
        WORKOUT_SESSIONS_STARTED_TOTAL.labels(source="routine" if routine_id else "empty").inc()
        logger.info("workout_session_started", session_id=session_id, routine_id=routine_id)
        return session_id

    async def resume(self, session_id: int) -> bool:
        if self.is_active and self.session_id == session_id:
            logger.debug("workout_session_resume_skipped", session_id=session_id)
            return True

        self.gateway.ensure_owner()
        self.state = SessionState.LOADING
        try:
            detail = await self.gateway.fetch_session_detail(session_id)
        except RemoteGatewayError as exc:
            logger.error("workout_session_resume_failed", session_id=session_id, error=str(exc))
            WORKOUT_SESSIONS_RESUMED_TOTAL.labels(outcome="failed").inc()
            await self._reset()
            return False
        except Exception:
            await self._reset()
            raise

        if detail is None:
            logger.warning("workout_session_resume_not_found", session_id=session_id)
            WORKOUT_SESSIONS_RESUMED_TOTAL.labels(outcome="not_found").inc()
            await self._reset()
            return False

        exercises = self.group_remote_sets(detail)
        await self._attach_baselines(exercises)
        self._activate(session_id, exercises, anchor=detail.start_time)
        await self.persist()
        WORKOUT_SESSIONS_RESUMED_TOTAL.labels(outcome="resumed").inc()
        logger.info(
            "workout_session_resumed",
            session_id=session_id,
            exercises=len(exercises),
            sets=len(detail.sets),
        )
        return True

    async def hydrate(self) -> SessionState:
        """Restore the cached session after a reload and reconcile it remotely."""
        cached = await self.cache.load()
        if cached is None:
            self.state = SessionState.NO_SESSION
            return self.state

        self._activate(cached.session_id, cached.active_exercises, anchor=cached.anchor)
        try:
            detail = await self.gateway.fetch_session_detail(cached.session_id)
        except UnauthorizedException:
            logger.warning("workout_session_hydrate_without_owner", session_id=cached.session_id)
            return self.state
        except RemoteGatewayError as exc:
            logger.warning("workout_session_hydrate_offline", session_id=cached.session_id, error=str(exc))
            return self.state

        if detail is None:
            logger.info("workout_session_cache_stale_dropped", session_id=cached.session_id)
            await self._reset()
            return self.state

        exercises = self.merge_cached(cached.active_exercises, self.group_remote_sets(detail))
        await self._attach_baselines(exercises)
        self._activate(cached.session_id, exercises, anchor=detail.start_time)
        await self.persist()
        logger.info("workout_session_hydrated", session_id=cached.session_id, exercises=len(exercises))
        return self.state

    async def catalog(self) -> dict[int, ExerciseRef]:
        if self._catalog is None:
            try:
                exercises = await self.gateway.list_exercises()
            except RemoteGatewayError as exc:
                raise RemoteUnavailableException("list_exercises") from exc
            self._catalog = {exercise.id: exercise for exercise in exercises}
        return self._catalog

    async def add_exercise(self, exercise: ExerciseRef | int) -> int:
        self._require_active()
        if not isinstance(exercise, ExerciseRef):
            exercise_id = exercise
            exercise = (await self.catalog()).get(exercise_id)
            if exercise is None:
                raise ExerciseNotFoundException(exercise_id)

        existing = self.ledger.find(exercise.id)
        index = self.ledger.add_exercise(exercise)
        await self.persist()

        active = self.ledger.exercises[index]
        if existing is None and active.previous_stats is None:
            active.previous_stats = await self._previous_stats(exercise.id)
            if self.is_active:
                await self.persist()
        return index

    async def add_set(self, exercise_index: int) -> WorkoutSet:
        self._require_active()
        new_set = self.ledger.add_set(exercise_index)
        await self.persist()
        return new_set

    async def update_weight(self, exercise_index: int, set_index: int, value: str) -> WorkoutSet:
        self._require_active()
        workout_set = self.ledger.update_weight(exercise_index, set_index, value)
        await self.persist()
        return workout_set

    async def update_reps(self, exercise_index: int, set_index: int, value: str) -> WorkoutSet:
        self._require_active()
        workout_set = self.ledger.update_reps(exercise_index, set_index, value)
        await self.persist()
        return workout_set

    async def toggle_completion(self, exercise_index: int, set_index: int) -> asyncio.Task | None:
        self._require_active()
        task = self.ledger.toggle_completion(exercise_index, set_index)
        await self.persist()
        if task is not None:
            task.add_done_callback(self._persist_after_write)
        return task

    async def set_note(self, exercise_index: int, set_index: int, note: str) -> asyncio.Task | None:
        self._require_active()
        task = self.ledger.set_note(exercise_index, set_index, note)
        await self.persist()
        if task is not None:
            task.add_done_callback(self._persist_after_write)
        return task

    def _persist_after_write(self, task: asyncio.Task) -> None:
        # Sync status changed; keep the cache in step so a reload sees it.
        if task.cancelled() or not self.is_active:
            return
        self.ledger.track(asyncio.ensure_future(self.persist()))

    async def finish(self, client_duration: int | None = None) -> FinishResult:
        if not self.is_active:
            logger.error("workout_session_finish_without_session")
            raise NoActiveSessionException("There is no active session to finish")

        session_id = self.session_id
        duration = self.clock.elapsed() if client_duration is None else max(0, int(client_duration))
        try:
            end_time = await self.gateway.finish_session(session_id, duration, end_time=self._now())
        except RemoteGatewayError as exc:
            logger.error("workout_session_finish_failed", session_id=session_id, error=str(exc))
            raise RemoteUnavailableException("finish") from exc

        self.state = SessionState.FINISHED
        await self._reset()
        WORKOUT_SESSIONS_FINISHED_TOTAL.inc()
        logger.info("workout_session_finished", session_id=session_id, duration_seconds=duration)
        return FinishResult(session_id=session_id, duration_seconds=duration, end_time=end_time)

    # read side

    def snapshot(self) -> SessionStateResponse:
        elapsed = self.clock.elapsed() if self.is_active else 0
        return SessionStateResponse(
            state=self.state,
            session_id=self.session_id,
            elapsed_seconds=elapsed,
            elapsed_display=format_elapsed(elapsed),
            anchor=self.clock.anchor,
            active_exercises=[a.model_copy(deep=True) for a in self.ledger.exercises],
            rest_timer=self.rest_timer.snapshot(),
        )

    async def drain(self) -> None:
        await self.ledger.drain()
