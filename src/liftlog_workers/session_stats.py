"""Statistics engine: read-time views over a session snapshot.

Every function here is pure. Nothing reads or writes the persisted summary,
so callers may run these against any immutable slice of history.
"""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from .catalog import (
    EXERCISE_CATALOG,
    UNKNOWN_ZONE,
    CatalogExercise,
    lookup_exercise,
    resolve_target_zone,
)
from .models import SessionRecord
from .utils import (
    as_utc,
    epley_1rm,
    resolve_now,
    round_half_up,
    week_start,
)

LAGGING_ZONE_THRESHOLD_PCT = 15.0
DEFAULT_PROGRESSION_WEEKS = 12
DAILY_ACTIVITY_WINDOW_DAYS = 90
STREAK_GAP_DAYS = 2


@dataclass(frozen=True)
class MuscleShare:
    target_zone: str
    volume: float
    percentage: float


@dataclass(frozen=True)
class VolumePoint:
    label: str
    value: int
    week: int


@dataclass(frozen=True)
class UserRank:
    percentile: int
    label: str
    next_rank_threshold: int


@dataclass(frozen=True)
class VolumeChange:
    current: int
    previous: int
    percentage_change: int


@dataclass(frozen=True)
class OneRepMaxPoint:
    date: str
    value: float


@dataclass(frozen=True)
class OneRepMaxProgression:
    exercise_name: str
    data_points: list[OneRepMaxPoint] = field(default_factory=list)


@dataclass(frozen=True)
class TrainingMetrics:
    streak_days: int
    total_volume_7d: int


# (min workouts/week, percentile, label, next rank threshold), checked in order.
# A frequency heuristic, not a population percentile: no cross-user data is used.
RANK_TIERS: tuple[tuple[float, int, str, int], ...] = (
    (5.0, 5, "Elite", 1),
    (4.0, 10, "Advanced", 5),
    (3.0, 20, "Intermediate", 10),
    (2.0, 40, "Regular", 20),
)
_RANK_FALLBACK = UserRank(percentile=70, label="Beginner", next_rank_threshold=40)
_RANK_NO_HISTORY = UserRank(percentile=100, label="Beginner", next_rank_threshold=5)


def muscle_distribution(
    sessions: Iterable[SessionRecord],
    catalog: Mapping[str, CatalogExercise] = EXERCISE_CATALOG,
) -> list[MuscleShare]:
    """Volume share per target zone, largest first.

    Exercises missing from the catalog are counted under ``UNKNOWN_ZONE``.
    """
    volume_by_zone: dict[str, float] = defaultdict(float)
    total_volume = 0.0

    for session in sessions:
        for exercise in session.exercises:
            zone = resolve_target_zone(exercise.exercise_id, catalog)
            for set_log in exercise.sets:
                volume = set_log.volume
                volume_by_zone[zone] += volume
                total_volume += volume

    distribution = [
        MuscleShare(
            target_zone=zone,
            volume=volume,
            percentage=(volume / total_volume * 100) if total_volume > 0 else 0.0,
        )
        for zone, volume in volume_by_zone.items()
    ]
    distribution.sort(key=lambda share: share.volume, reverse=True)
    return distribution


def find_lagging_zone(
    distribution: Sequence[MuscleShare],
    threshold_pct: float = LAGGING_ZONE_THRESHOLD_PCT,
) -> str | None:
    """Return the least-trained zone, but only if its share is below threshold.

    Being the lowest is not enough on its own: with many zones trained evenly
    every one of them is small.
    """
    candidates = [share for share in distribution if share.target_zone != UNKNOWN_ZONE]
    if not candidates:
        return None
    lowest = min(candidates, key=lambda share: share.percentage)
    if lowest.percentage < threshold_pct:
        return lowest.target_zone
    return None


def volume_progression(
    sessions: Iterable[SessionRecord],
    weeks: int = DEFAULT_PROGRESSION_WEEKS,
    now: datetime | None = None,
) -> list[VolumePoint]:
    """Weekly volume for the last ``weeks`` Monday-start weeks, oldest first.

    The last bucket is the current week. Buckets cover whole UTC days,
    Monday through Sunday.
    """
    if weeks < 1:
        return []

    current_monday = week_start(resolve_now(now).date())
    first_monday = current_monday - timedelta(weeks=weeks - 1)
    weekly_volumes = [0.0] * weeks

    for session in sessions:
        if session.performed_at is None:
            continue
        session_day = as_utc(session.performed_at).date()
        index = (week_start(session_day) - first_monday).days // 7
        if 0 <= index < weeks:
            weekly_volumes[index] += session.volume

    return [
        VolumePoint(label=f"S{i + 1}", value=int(round_half_up(volume)), week=i + 1)
        for i, volume in enumerate(weekly_volumes)
    ]


def user_rank(sessions: Iterable[SessionRecord]) -> UserRank:
    """Map average workouts per week onto the fixed ``RANK_TIERS`` table."""
    sessions = list(sessions)
    if not sessions:
        return _RANK_NO_HISTORY

    timestamps = [as_utc(s.performed_at) for s in sessions if s.performed_at is not None]
    if not timestamps:
        return _RANK_NO_HISTORY

    elapsed = max(timestamps) - min(timestamps)
    days = max(1, math.ceil(elapsed.total_seconds() / 86400))
    workouts_per_week = len(sessions) / days * 7

    for min_per_week, percentile, label, next_threshold in RANK_TIERS:
        if workouts_per_week >= min_per_week:
            return UserRank(
                percentile=percentile,
                label=label,
                next_rank_threshold=next_threshold,
            )
    return _RANK_FALLBACK


def heatmap(
    sessions: Iterable[SessionRecord],
    catalog: Mapping[str, CatalogExercise] = EXERCISE_CATALOG,
) -> dict[str, float]:
    """Per-muscle intensity in [0, 1], normalized by the busiest muscle.

    An exercise's full volume counts towards each of its primary muscles.
    Uncatalogued exercises are left out.
    """
    muscle_volume: dict[str, float] = defaultdict(float)

    for session in sessions:
        for exercise in session.exercises:
            entry = lookup_exercise(exercise.exercise_id, catalog)
            if entry is None or not entry.primary_muscles:
                continue
            volume = exercise.volume
            for muscle in entry.primary_muscles:
                muscle_volume[muscle] += volume

    if not muscle_volume:
        return {}

    max_volume = max(muscle_volume.values())
    return {
        muscle: (volume / max_volume) if max_volume > 0 else 0.0
        for muscle, volume in muscle_volume.items()
    }


def weekly_volume_change(
    sessions: Iterable[SessionRecord], now: datetime | None = None
) -> VolumeChange:
    """Volume of the last 7 days against the 7 days before that."""
    now = resolve_now(now)
    one_week_ago = now - timedelta(days=7)
    two_weeks_ago = now - timedelta(days=14)

    current = 0.0
    previous = 0.0
    for session in sessions:
        if session.performed_at is None:
            continue
        performed_at = as_utc(session.performed_at)
        if performed_at >= one_week_ago:
            current += session.volume
        elif performed_at >= two_weeks_ago:
            previous += session.volume

    change = ((current - previous) / previous * 100) if previous > 0 else 0.0
    return VolumeChange(
        current=int(round_half_up(current)),
        previous=int(round_half_up(previous)),
        percentage_change=int(round_half_up(change)),
    )


def daily_activity(
    sessions: Iterable[SessionRecord],
    days: int = DAILY_ACTIVITY_WINDOW_DAYS,
    now: datetime | None = None,
) -> dict[str, int]:
    """Sessions per UTC day for the last ``days`` days (today included), zero-filled."""
    today = resolve_now(now).date()
    counts = {
        (today - timedelta(days=offset)).isoformat(): 0
        for offset in range(days - 1, -1, -1)
    }
    for session in sessions:
        if session.performed_at is None:
            continue
        key = as_utc(session.performed_at).date().isoformat()
        if key in counts:
            counts[key] += 1
    return counts


def estimated_1rm_progression(sessions: Iterable[SessionRecord]) -> OneRepMaxProgression:
    """Best Epley 1RM per session for the exercise with the most total volume.

    Every session counts towards picking the exercise; only timestamped ones
    become data points.
    """
    sessions = list(sessions)
    ordered = sorted(
        (s for s in sessions if s.performed_at is not None),
        key=lambda s: s.performed_at,
    )

    exercise_volumes: dict[str, float] = defaultdict(float)
    for session in sessions:
        for exercise in session.exercises:
            exercise_volumes[exercise.name] += exercise.volume

    top_exercise = ""
    max_volume = 0.0
    for name, volume in exercise_volumes.items():
        if volume > max_volume:
            max_volume = volume
            top_exercise = name

    if not top_exercise:
        return OneRepMaxProgression(exercise_name="")

    points: list[OneRepMaxPoint] = []
    for session in ordered:
        for exercise in session.exercises:
            if exercise.name != top_exercise:
                continue
            best = max((epley_1rm(s.weight, s.reps) for s in exercise.sets), default=0.0)
            if best > 0:
                points.append(OneRepMaxPoint(
                    date=as_utc(session.performed_at).date().isoformat(),
                    value=round_half_up(best, 1),
                ))

    return OneRepMaxProgression(exercise_name=top_exercise, data_points=points)


def current_week_streak(
    sessions: Iterable[SessionRecord], now: datetime | None = None
) -> int:
    """Consecutive ISO weeks with at least one session, ending this week."""
    active_weeks: set[tuple[int, int]] = set()
    for session in sessions:
        if session.performed_at is None:
            continue
        iso = as_utc(session.performed_at).date().isocalendar()
        active_weeks.add((iso.year, iso.week))

    streak = 0
    cursor = resolve_now(now).date()
    while True:
        iso = cursor.isocalendar()
        if (iso.year, iso.week) not in active_weeks:
            return streak
        streak += 1
        cursor -= timedelta(days=7)


def best_streak(sessions: Iterable[SessionRecord]) -> int:
    """Longest historical streak, measured in weeks touched.

    Sessions at most ``STREAK_GAP_DAYS`` whole days apart continue a streak.
    Each step into a new 7-day block (counted from the Unix epoch) adds one.
    A longer gap starts a new streak at 1.
    """
    timestamps = sorted(as_utc(s.performed_at) for s in sessions if s.performed_at is not None)
    if not timestamps:
        return 0

    best = 0
    current = 1
    for previous, performed_at in zip(timestamps, timestamps[1:]):
        gap_days = math.floor((performed_at - previous).total_seconds() / 86400)
        if gap_days <= STREAK_GAP_DAYS:
            if _epoch_week(performed_at) != _epoch_week(previous):
                current += 1
        else:
            best = max(best, current)
            current = 1
    return max(best, current)


def _epoch_week(moment: datetime) -> int:
    return math.floor(moment.timestamp() / (7 * 86400))


def training_metrics(
    sessions: Iterable[SessionRecord], now: datetime | None = None
) -> TrainingMetrics:
    """Consecutive training-day streak up to today, plus 7-day volume."""
    now = resolve_now(now)
    today = now.date()
    seven_days_ago = now - timedelta(days=7)

    training_days: set[date] = set()
    volume_7d = 0.0
    for session in sessions:
        if session.performed_at is None:
            continue
        performed_at = as_utc(session.performed_at)
        training_days.add(performed_at.date())
        if performed_at >= seven_days_ago:
            volume_7d += session.volume

    streak = 0
    for day in sorted(training_days, reverse=True):
        diff = (today - day).days
        if diff == streak:
            streak += 1
        elif diff > streak:
            break

    return TrainingMetrics(streak_days=streak, total_volume_7d=int(round_half_up(volume_7d)))
