"""Aggregate update engine: pure part.

Maintains ``UserAnalyticsSummary`` as a fold over sessions. Every step is a
pure transformation ``(summary, input) -> summary'``; the store read/write
happens in ``handlers.analytics_summary``.

The per-step operations are sum (volume, workouts), strict max-merge (PRs),
set-union (training dates) and prune-then-score (consistency). All of them
are order-independent for a fixed ``now``, so a full rebuild over the session
history yields the same totals, PRs and score as the incremental path.
Only ``last_training_date`` depends on fold order.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone

from .models import (
    ExerciseMax,
    PersonalRecord,
    SessionRecord,
    UserAnalyticsSummary,
    WorkoutAnalyticsInput,
)
from .utils import (
    date_cutoff,
    normalize_exercise_key,
    resolve_now,
    round_half_up,
    training_date_for,
)

TRAINING_DATE_RETENTION_DAYS = 90
CONSISTENCY_WINDOW_DAYS = 30
IDEAL_TRAINING_DAYS_PER_WEEK = 4.5

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def extract_input(
    session: SessionRecord, now: datetime | None = None
) -> WorkoutAnalyticsInput:
    """Derive the analytics contribution of one session.

    ``exercise_maxes`` holds the single best set per exercise; on equal
    volume the first set wins. Exercises without any positive-volume set
    contribute nothing to the PR merge.
    """
    session_volume = 0.0
    exercise_maxes: list[ExerciseMax] = []

    for exercise in session.exercises:
        best: ExerciseMax | None = None
        for set_log in exercise.sets:
            set_volume = set_log.weight * set_log.reps
            session_volume += set_volume
            if set_volume > (best.volume if best is not None else 0.0):
                best = ExerciseMax(
                    exercise_name=exercise.name,
                    weight=set_log.weight,
                    reps=set_log.reps,
                )
        if best is not None:
            exercise_maxes.append(best)

    performed_at = session.performed_at or resolve_now(now)
    return WorkoutAnalyticsInput(
        session_volume=session_volume,
        exercise_maxes=tuple(exercise_maxes),
        training_date=training_date_for(performed_at),
        performed_at=performed_at,
    )


def merge_prs(
    existing: Mapping[str, PersonalRecord] | Iterable[PersonalRecord],
    new_maxes: Iterable[ExerciseMax],
    achieved_at: datetime,
) -> dict[str, PersonalRecord]:
    """Fold session maxes into the PR map; replace only on strictly higher volume.

    Returned dict is ordered by volume, highest first.
    """
    records = existing.values() if isinstance(existing, Mapping) else existing
    pr_map: dict[str, PersonalRecord] = {pr.exercise_key: pr for pr in records}

    for new_max in new_maxes:
        key = normalize_exercise_key(new_max.exercise_name)
        if not key:
            continue
        new_volume = new_max.volume
        current = pr_map.get(key)
        if current is None or new_volume > current.volume:
            pr_map[key] = PersonalRecord(
                exercise_name=new_max.exercise_name,
                exercise_key=key,
                weight=new_max.weight,
                reps=new_max.reps,
                volume=new_volume,
                achieved_at=achieved_at,
            )

    ordered = sorted(pr_map.values(), key=lambda pr: pr.volume, reverse=True)
    return {pr.exercise_key: pr for pr in ordered}


def calculate_consistency(
    training_dates: Iterable[str],
    window_days: int = CONSISTENCY_WINDOW_DAYS,
    now: datetime | None = None,
) -> int:
    """Score 0-100: distinct training days in the window vs ~4.5 days/week."""
    dates = set(training_dates)
    if not dates:
        return 0

    cutoff = date_cutoff(resolve_now(now), window_days)
    recent_days = sum(1 for d in dates if d >= cutoff)
    ideal_days = max(1, int(round_half_up(window_days / 7 * IDEAL_TRAINING_DAYS_PER_WEEK)))
    return min(100, int(round_half_up(recent_days / ideal_days * 100)))


def prune_training_dates(
    dates: Iterable[str],
    retention_days: int = TRAINING_DATE_RETENTION_DAYS,
    now: datetime | None = None,
) -> list[str]:
    """Drop dates older than the retention window. Output is sorted and unique."""
    cutoff = date_cutoff(resolve_now(now), retention_days)
    return sorted({d for d in dates if d >= cutoff})


def empty_summary(user_id: str) -> UserAnalyticsSummary:
    return UserAnalyticsSummary(user_id=user_id)


def fold_input(
    summary: UserAnalyticsSummary,
    analytics_input: WorkoutAnalyticsInput,
    now: datetime | None = None,
) -> UserAnalyticsSummary:
    """Apply one session's contribution. Does not touch ``version``."""
    now = resolve_now(now)

    training_dates = list(summary.training_dates)
    if analytics_input.training_date not in training_dates:
        training_dates.append(analytics_input.training_date)
    training_dates = prune_training_dates(training_dates, now=now)

    return summary.model_copy(update={
        "total_volume": summary.total_volume + analytics_input.session_volume,
        "total_workouts": summary.total_workouts + 1,
        "training_dates": training_dates,
        "consistency_score": calculate_consistency(training_dates, now=now),
        "personal_records": merge_prs(
            summary.personal_records,
            analytics_input.exercise_maxes,
            analytics_input.performed_at,
        ),
        "last_training_date": analytics_input.performed_at,
        "updated_at": now,
    })


def chronological(sessions: Iterable[SessionRecord]) -> list[SessionRecord]:
    """Stable sort by ``performed_at``; sessions without a timestamp go first."""
    return sorted(sessions, key=lambda s: s.performed_at or _EPOCH)


def rebuild_summary(
    user_id: str,
    sessions: Iterable[SessionRecord],
    now: datetime | None = None,
) -> UserAnalyticsSummary:
    """Recompute the summary from the complete session history."""
    now = resolve_now(now)
    summary = empty_summary(user_id)
    for session in chronological(sessions):
        summary = fold_input(summary, extract_input(session, now=now), now=now)
    return summary.model_copy(update={"updated_at": now})
