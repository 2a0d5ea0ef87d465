"""Shared utility functions for LiftLog workers."""

import math
from datetime import date, datetime, timedelta, timezone
from typing import Any


def coerce_number(value: Any) -> float:
    """Return ``value`` as a finite float, or 0.0 when it is not numeric.

    Accepts ints, floats and numeric strings ("82.5", " 10 ").
    """
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        parsed = float(value)
    elif isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    if not math.isfinite(parsed):
        return 0.0
    return parsed


def coerce_reps(value: Any) -> int:
    """Return ``value`` as an integer rep count (truncated), 0 when not numeric."""
    return int(coerce_number(value))


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round like the mobile client does (0.5 always goes up)."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def as_utc(ts: datetime) -> datetime:
    """Return ``ts`` as timezone-aware datetime in UTC (naive is taken as UTC)."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_now(now: datetime | None) -> datetime:
    return as_utc(now) if now is not None else utc_now()


def training_date_for(ts: datetime) -> str:
    """Return the UTC calendar date of ``ts`` as YYYY-MM-DD."""
    return as_utc(ts).date().isoformat()


def date_cutoff(now: datetime, days: int) -> str:
    """ISO date string for ``now - days``; ISO dates compare lexicographically."""
    return (as_utc(now) - timedelta(days=days)).date().isoformat()


def week_start(d: date) -> date:
    """Monday of the calendar week containing ``d``."""
    return d - timedelta(days=d.weekday())


def normalize_exercise_key(name: str) -> str:
    return name.strip().lower()


def epley_1rm(weight_kg: float, reps: int) -> float:
    """Estimate 1RM using the Epley formula: weight * (1 + reps/30).

    The formula applies to single reps too, so 100 x 1 gives 103.3.
    Returns 0.0 for invalid inputs (reps <= 0 or weight <= 0).
    """
    if reps <= 0 or weight_kg <= 0:
        return 0.0
    return weight_kg * (1 + reps / 30)
