from datetime import UTC, datetime

import pytest

from active_session_service.exceptions import (
    NoActiveSessionException,
    SetNotFoundException,
    UnauthorizedException,
)
from active_session_service.schemas import ActiveExercise, ExerciseRef, PreviousStats, SyncStatus, WorkoutSet
from active_session_service.services.set_ledger import SetLedger
from fake_persistence import OWNER

BENCH = ExerciseRef(id=1, name="Bench Press")
PLANK = ExerciseRef(id=3, name="Plank", kind="duration")


@pytest.fixture()
def session_id(persistence):
    return persistence.add_session(OWNER, datetime.now(UTC))


@pytest.fixture()
def ledger(gateway, session_id):
    ledger = SetLedger(gateway)
    ledger.reset(session_id)
    return ledger


def test_add_exercise_seeds_one_blank_set(ledger):
    index = ledger.add_exercise(BENCH)
    active = ledger.exercises[index]
    assert [s.model_dump() for s in active.sets] == [
        {
            "set_number": 1,
            "weight": "",
            "reps": "",
            "is_completed": False,
            "note": None,
            "sync_status": SyncStatus.LOCAL,
        }
    ]


def test_add_exercise_twice_keeps_single_entry(ledger):
    first = ledger.add_exercise(BENCH)
    second = ledger.add_exercise(BENCH)
    assert first == second
    assert len(ledger.exercises) == 1


def test_add_set_copies_preceding_set(ledger):
    ledger.add_exercise(BENCH, previous_stats=PreviousStats(weight=15, reps=12))
    ledger.update_weight(0, 0, "20")
    ledger.update_reps(0, 0, "10")

    new_set = ledger.add_set(0)

    assert (new_set.set_number, new_set.weight, new_set.reps) == (2, "20", "10")
    assert not new_set.is_completed


def test_add_set_without_prior_sets_uses_baseline(ledger):
    ledger.exercises.append(ActiveExercise(exercise=BENCH, previous_stats=PreviousStats(weight=15, reps=12)))

    new_set = ledger.add_set(0)

    assert (new_set.set_number, new_set.weight, new_set.reps) == (1, "15", "12")


def test_add_set_after_blank_seed_uses_baseline(ledger):
    ledger.add_exercise(BENCH, previous_stats=PreviousStats(weight=15, reps=12))

    new_set = ledger.add_set(0)

    assert (new_set.set_number, new_set.weight, new_set.reps) == (2, "15", "12")


def test_add_set_without_anything_is_blank(ledger):
    ledger.add_exercise(BENCH)
    new_set = ledger.add_set(0)
    assert (new_set.weight, new_set.reps) == ("", "")


def test_set_numbers_stay_dense(ledger):
    ledger.add_exercise(BENCH)
    for _ in range(3):
        ledger.add_set(0)
    assert [s.set_number for s in ledger.exercises[0].sets] == [1, 2, 3, 4]


def test_bad_indices_raise_not_found(ledger):
    ledger.add_exercise(BENCH)
    with pytest.raises(SetNotFoundException):
        ledger.add_set(5)
    with pytest.raises(SetNotFoundException):
        ledger.update_weight(0, 3, "10")


def test_edits_are_local_only(ledger, persistence):
    ledger.add_exercise(BENCH)
    ledger.update_weight(0, 0, "40")
    ledger.update_reps(0, 0, "8")
    assert persistence.calls == []


@pytest.mark.asyncio
async def test_toggle_upserts_once_per_key(ledger, persistence, session_id):
    ledger.add_exercise(BENCH)
    ledger.update_weight(0, 0, "40")
    ledger.update_reps(0, 0, "8")

    task = ledger.toggle_completion(0, 0)
    assert ledger.exercises[0].sets[0].is_completed
    assert ledger.exercises[0].sets[0].sync_status == SyncStatus.PENDING
    assert await task is True

    assert ledger.toggle_completion(0, 0) is None
    assert not ledger.exercises[0].sets[0].is_completed
    ledger.update_reps(0, 0, "9")
    await ledger.toggle_completion(0, 0)
    await ledger.drain()

    rows = persistence.rows_for(session_id)
    assert list(rows) == [(1, 1)]
    assert rows[(1, 1)]["weight_kg"] == 40.0
    assert rows[(1, 1)]["reps"] == 9
    assert rows[(1, 1)]["is_completed"] is True
    assert ledger.exercises[0].sets[0].sync_status == SyncStatus.SYNCED
    assert persistence.count("PATCH", "/sets/") == 0


@pytest.mark.asyncio
async def test_drain_waits_for_every_pending_write(ledger, persistence, session_id):
    ledger.add_exercise(BENCH)
    ledger.add_exercise(PLANK)
    ledger.toggle_completion(0, 0)
    ledger.toggle_completion(1, 0)
    assert ledger.pending_writes == 2

    await ledger.drain()

    assert ledger.pending_writes == 0
    assert set(persistence.rows_for(session_id)) == {(1, 1), (3, 1)}


@pytest.mark.asyncio
async def test_uncomplete_can_patch_when_enabled(gateway, persistence, session_id):
    ledger = SetLedger(gateway, patch_on_uncomplete=True)
    ledger.reset(session_id)
    ledger.add_exercise(BENCH)
    await ledger.toggle_completion(0, 0)

    await ledger.toggle_completion(0, 0)

    assert persistence.rows_for(session_id)[(1, 1)]["is_completed"] is False


@pytest.mark.asyncio
async def test_duration_sets_are_written_in_seconds(ledger, persistence, session_id):
    ledger.add_exercise(PLANK)
    ledger.update_reps(0, 0, "1:30")
    await ledger.toggle_completion(0, 0)

    row = persistence.rows_for(session_id)[(3, 1)]
    assert row["time_in_seconds"] == 90
    assert row["reps"] is None


@pytest.mark.asyncio
async def test_oversized_values_are_written_as_zero(ledger, persistence, session_id):
    ledger.add_exercise(BENCH)
    ledger.update_weight(0, 0, "9" * 400)
    ledger.update_reps(0, 0, "9" * 400)

    assert await ledger.toggle_completion(0, 0) is True

    row = persistence.rows_for(session_id)[(1, 1)]
    assert (row["weight_kg"], row["reps"], row["is_completed"]) == (0.0, 0, True)


@pytest.mark.asyncio
async def test_oversized_duration_is_written_as_zero(ledger, persistence, session_id):
    ledger.add_exercise(PLANK)
    ledger.update_reps(0, 0, "1:" + "9" * 5000)

    await ledger.toggle_completion(0, 0)

    assert persistence.rows_for(session_id)[(3, 1)]["time_in_seconds"] == 0


@pytest.mark.asyncio
async def test_failed_write_keeps_optimistic_state(ledger, persistence, session_id):
    persistence.fail_writes = True
    ledger.add_exercise(BENCH)

    task = ledger.toggle_completion(0, 0)
    assert await task is False

    workout_set = ledger.exercises[0].sets[0]
    assert workout_set.is_completed
    assert workout_set.sync_status == SyncStatus.FAILED
    assert persistence.rows_for(session_id) == {}


@pytest.mark.asyncio
async def test_completion_triggers_hook(gateway, session_id):
    fired = []
    ledger = SetLedger(gateway, on_set_completed=lambda: fired.append(True))
    ledger.reset(session_id)
    ledger.add_exercise(BENCH)

    await ledger.toggle_completion(0, 0)
    ledger.toggle_completion(0, 0)

    assert fired == [True]


@pytest.mark.asyncio
async def test_hook_failure_does_not_block_toggle(gateway, session_id):
    def broken():
        raise RuntimeError("timer exploded")

    ledger = SetLedger(gateway, on_set_completed=broken)
    ledger.reset(session_id)
    ledger.add_exercise(BENCH)

    assert await ledger.toggle_completion(0, 0) is True


@pytest.mark.asyncio
async def test_note_patches_only_completed_sets(ledger, persistence, session_id):
    ledger.add_exercise(BENCH)

    assert ledger.set_note(0, 0, "felt heavy") is None
    assert ledger.exercises[0].sets[0].note == "felt heavy"
    assert persistence.calls == []

    await ledger.toggle_completion(0, 0)
    await ledger.set_note(0, 0, "RPE 9")

    assert persistence.rows_for(session_id)[(1, 1)]["note"] == "RPE 9"
    assert persistence.count("PATCH", "/sets/1$") == 1


def test_toggle_without_session_raises(gateway):
    ledger = SetLedger(gateway)
    ledger.add_exercise(BENCH)
    with pytest.raises(NoActiveSessionException):
        ledger.toggle_completion(0, 0)


def test_toggle_without_owner_fails_before_mutating(gateway, session_id, persistence):
    gateway.bind_owner(None)
    ledger = SetLedger(gateway)
    ledger.reset(session_id, [ActiveExercise(exercise=BENCH, sets=[WorkoutSet(set_number=1)])])

    with pytest.raises(UnauthorizedException):
        ledger.toggle_completion(0, 0)

    assert not ledger.exercises[0].sets[0].is_completed
    assert persistence.calls == []
