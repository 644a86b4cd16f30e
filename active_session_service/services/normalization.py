"""Normalization of free-form set values before they are written remotely.

Every function here is total: malformed input degrades to zero instead of
raising, so a typo never blocks the user from completing a set.
"""

import math
import re

from ..schemas import SetWrite, TrackingKind, WorkoutSet

_NON_NUMERIC = re.compile(r"[^0-9.]")
# Longer h/m/s fields are treated as malformed.
_MAX_PART_DIGITS = 9


def parse_number(value: str | int | float | None) -> float:
    """Strip everything but digits and dots and parse what is left.

    ``"12 reps"`` -> 12.0, ``"12.5kg"`` -> 12.5, ``"abc"`` -> 0.0
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        try:
            number = float(value)
        except OverflowError:
            return 0.0
        return number if math.isfinite(number) and number >= 0 else 0.0
    cleaned = _NON_NUMERIC.sub("", str(value))
    if not cleaned:
        return 0.0
    try:
        number = float(cleaned)
    except ValueError:
        return 0.0
    # Long digit runs overflow to inf.
    return number if math.isfinite(number) else 0.0


def parse_int(value: str | int | float | None) -> int:
    return int(parse_number(value))


def parse_duration(value: str | int | float | None) -> int:
    """Parse a duration in seconds from ``"90"``, ``"45s"``, ``"1:30"`` or ``"1:02:03"``."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int | float):
        return parse_int(value)
    text = str(value).strip()
    if ":" not in text:
        return parse_int(text)

    parts = text.split(":")
    if len(parts) > 3:
        return 0
    total = 0
    for part in parts:
        digits = _NON_NUMERIC.sub("", part).split(".")[0]
        if part.strip() and not digits:
            return 0
        if len(digits) > _MAX_PART_DIGITS:
            return 0
        total = total * 60 + (int(digits) if digits else 0)
    return total


def format_number(value: float | int | None) -> str:
    if value is None:
        return ""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def normalize_set(workout_set: WorkoutSet, kind: TrackingKind, is_completed: bool | None = None) -> SetWrite:
    completed = workout_set.is_completed if is_completed is None else is_completed
    if kind == TrackingKind.DURATION:
        return SetWrite(
            weight_kg=parse_number(workout_set.weight),
            time_in_seconds=parse_duration(workout_set.reps),
            is_completed=completed,
            note=workout_set.note,
        )
    return SetWrite(
        weight_kg=parse_number(workout_set.weight),
        reps=parse_int(workout_set.reps),
        is_completed=completed,
        note=workout_set.note,
    )
