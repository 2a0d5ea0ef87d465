"""Tests for the aggregate update engine (pure functions, no DB)."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

from hypothesis import given, settings
from hypothesis import strategies as st

from liftlog_workers.aggregates import (
    calculate_consistency,
    chronological,
    empty_summary,
    extract_input,
    fold_input,
    merge_prs,
    prune_training_dates,
    rebuild_summary,
)
from liftlog_workers.models import (
    ExerciseLog,
    ExerciseMax,
    PersonalRecord,
    SessionRecord,
    SetLog,
)

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def _session(
    performed_at: datetime | None,
    exercises: dict[str, list[tuple[float, int]]],
    user_id: str = "u1",
) -> SessionRecord:
    return SessionRecord(
        user_id=user_id,
        performed_at=performed_at,
        exercises=[
            ExerciseLog(name=name, sets=[SetLog(weight=w, reps=r) for w, r in sets])
            for name, sets in exercises.items()
        ],
    )


def _days_ago(n: int) -> str:
    return (NOW - timedelta(days=n)).date().isoformat()


class TestExtractInput:
    def test_volume_and_best_set(self):
        session = _session(NOW, {"Bench Press": [(100, 10), (100, 8)]})
        result = extract_input(session, now=NOW)
        assert result.session_volume == 1800
        assert result.exercise_maxes == (ExerciseMax("Bench Press", 100, 10),)

    def test_equal_volume_keeps_first_set(self):
        session = _session(NOW, {"Squat": [(100, 10), (200, 5)]})
        result = extract_input(session, now=NOW)
        assert result.exercise_maxes == (ExerciseMax("Squat", 100, 10),)

    def test_zero_volume_exercise_has_no_max(self):
        session = _session(NOW, {"Plank": [(0, 0), (0, 3)], "Row": [(50, 10)]})
        result = extract_input(session, now=NOW)
        assert [m.exercise_name for m in result.exercise_maxes] == ["Row"]
        assert result.session_volume == 500

    def test_missing_timestamp_uses_now(self):
        session = _session(None, {"Row": [(50, 10)]})
        result = extract_input(session, now=NOW)
        assert result.performed_at == NOW
        assert result.training_date == "2025-06-15"

    def test_training_date_is_utc_calendar_day(self):
        late = datetime(2025, 6, 14, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
        result = extract_input(_session(late, {"Row": [(50, 10)]}), now=NOW)
        assert result.training_date == "2025-06-15"

    def test_string_numbers_are_coerced(self):
        session = SessionRecord.model_validate({
            "userId": "u1",
            "performedAt": "2025-06-15T10:00:00Z",
            "exercises": [{"name": "Bench", "sets": [{"weight": "80.5", "reps": "5"}, {"weight": "abc"}]}],
        })
        result = extract_input(session, now=NOW)
        assert result.session_volume == 402.5


class TestMergePrs:
    def test_higher_volume_replaces_lower_does_not(self):
        first = NOW - timedelta(days=2)
        prs = merge_prs({}, [ExerciseMax("Bench Press", 100, 10)], first)
        assert prs["bench press"].volume == 1000

        prs = merge_prs(prs, [ExerciseMax("Bench Press", 120, 10)], NOW - timedelta(days=1))
        assert prs["bench press"].volume == 1200

        prs = merge_prs(prs, [ExerciseMax("Bench Press", 90, 10)], NOW)
        assert prs["bench press"].volume == 1200
        assert prs["bench press"].weight == 120

    def test_equal_volume_keeps_existing(self):
        prs = merge_prs({}, [ExerciseMax("Squat", 100, 10)], NOW - timedelta(days=1))
        prs = merge_prs(prs, [ExerciseMax("Squat", 200, 5)], NOW)
        assert prs["squat"].weight == 100
        assert prs["squat"].achieved_at == NOW - timedelta(days=1)

    def test_key_is_case_and_whitespace_insensitive(self):
        prs = merge_prs({}, [ExerciseMax("Bench Press", 100, 5)], NOW)
        prs = merge_prs(prs, [ExerciseMax("  bench press ", 100, 6)], NOW)
        assert list(prs) == ["bench press"]
        assert prs["bench press"].reps == 6

    def test_blank_name_is_ignored(self):
        assert merge_prs({}, [ExerciseMax("   ", 100, 5)], NOW) == {}

    def test_ordered_by_volume_descending(self):
        prs = merge_prs(
            {},
            [ExerciseMax("Curl", 20, 10), ExerciseMax("Deadlift", 180, 5), ExerciseMax("Row", 60, 10)],
            NOW,
        )
        assert list(prs) == ["deadlift", "row", "curl"]

    def test_accepts_record_list(self):
        existing = [PersonalRecord(
            exercise_name="Row", exercise_key="row", weight=60, reps=10, volume=600, achieved_at=NOW,
        )]
        prs = merge_prs(existing, [ExerciseMax("Row", 50, 10)], NOW)
        assert prs["row"].volume == 600


class TestConsistency:
    def test_ten_days_in_window_scores_53(self):
        dates = [_days_ago(n) for n in range(10)]
        assert calculate_consistency(dates, now=NOW) == 53

    def test_dates_outside_window_do_not_count(self):
        dates = [_days_ago(n) for n in range(10)] + [_days_ago(n) for n in range(40, 60)]
        assert calculate_consistency(dates, now=NOW) == 53

    def test_empty_is_zero(self):
        assert calculate_consistency([], now=NOW) == 0

    def test_capped_at_100(self):
        dates = [_days_ago(n) for n in range(30)]
        assert calculate_consistency(dates, now=NOW) == 100

    def test_duplicates_count_once(self):
        assert calculate_consistency([_days_ago(1)] * 5, now=NOW) == 5

    def test_tiny_window_does_not_divide_by_zero(self):
        assert calculate_consistency([_days_ago(0)], window_days=0, now=NOW) == 100

    @given(st.lists(st.integers(min_value=0, max_value=200), max_size=120))
    @settings(max_examples=100)
    def test_always_between_0_and_100(self, offsets):
        score = calculate_consistency([_days_ago(n) for n in offsets], now=NOW)
        assert 0 <= score <= 100


class TestPruneTrainingDates:
    def test_cutoff_is_inclusive(self):
        dates = [_days_ago(91), _days_ago(90), _days_ago(5)]
        assert prune_training_dates(dates, now=NOW) == [_days_ago(90), _days_ago(5)]

    def test_sorted_and_unique(self):
        dates = [_days_ago(1), _days_ago(3), _days_ago(1)]
        assert prune_training_dates(dates, now=NOW) == [_days_ago(3), _days_ago(1)]


class TestFoldInput:
    def test_fold_updates_totals_and_keeps_version(self):
        summary = empty_summary("u1").model_copy(update={"version": 4})
        analytics_input = extract_input(_session(NOW, {"Bench Press": [(100, 10)]}), now=NOW)

        folded = fold_input(summary, analytics_input, now=NOW)

        assert folded.total_volume == 1000
        assert folded.total_workouts == 1
        assert folded.training_dates == ["2025-06-15"]
        assert folded.consistency_score == 5
        assert folded.last_training_date == NOW
        assert folded.updated_at == NOW
        assert folded.version == 4
        assert summary.total_workouts == 0

    def test_same_day_twice_adds_one_training_date(self):
        summary = empty_summary("u1")
        for hour in (8, 18):
            ts = NOW.replace(hour=hour)
            summary = fold_input(summary, extract_input(_session(ts, {"Row": [(50, 10)]})), now=NOW)
        assert summary.total_workouts == 2
        assert summary.training_dates == ["2025-06-15"]

    def test_old_training_dates_are_pruned(self):
        summary = empty_summary("u1").model_copy(update={"training_dates": [_days_ago(120)]})
        folded = fold_input(summary, extract_input(_session(NOW, {"Row": [(50, 10)]})), now=NOW)
        assert folded.training_dates == ["2025-06-15"]


class TestRebuild:
    def test_empty_history(self):
        summary = rebuild_summary("u1", [], now=NOW)
        assert summary.total_workouts == 0
        assert summary.total_volume == 0
        assert summary.personal_records == {}
        assert summary.consistency_score == 0
        assert summary.updated_at == NOW

    def test_chronological_puts_untimestamped_first(self):
        dated = _session(NOW, {"Row": [(50, 10)]})
        undated = _session(None, {"Row": [(40, 10)]})
        assert chronological([dated, undated]) == [undated, dated]

    def test_last_training_date_is_latest_session(self):
        sessions = [
            _session(NOW - timedelta(days=1), {"Row": [(50, 10)]}),
            _session(NOW - timedelta(days=9), {"Row": [(60, 10)]}),
        ]
        summary = rebuild_summary("u1", sessions, now=NOW)
        assert summary.last_training_date == NOW - timedelta(days=1)
        assert summary.personal_records["row"].achieved_at == NOW - timedelta(days=9)


_set_strategy = st.tuples(
    st.integers(min_value=0, max_value=200),
    st.integers(min_value=0, max_value=20),
)
_session_strategy = st.tuples(
    st.integers(min_value=0, max_value=120),
    st.integers(min_value=0, max_value=23),
    st.dictionaries(
        st.sampled_from(["Bench Press", "Squat", "Deadlift", "Row"]),
        st.lists(_set_strategy, min_size=1, max_size=4),
        max_size=3,
    ),
)


@given(st.lists(_session_strategy, max_size=12), st.randoms(use_true_random=False))
@settings(max_examples=75, deadline=None)
def test_incremental_fold_in_any_order_matches_rebuild(raw_sessions, rnd: random.Random):
    sessions = [
        _session(NOW - timedelta(days=days, hours=hours), exercises)
        for days, hours, exercises in raw_sessions
    ]
    shuffled = list(sessions)
    rnd.shuffle(shuffled)

    incremental = empty_summary("u1")
    for session in shuffled:
        incremental = fold_input(incremental, extract_input(session, now=NOW), now=NOW)
    rebuilt = rebuild_summary("u1", sessions, now=NOW)

    assert incremental.total_volume == rebuilt.total_volume
    assert incremental.total_workouts == rebuilt.total_workouts == len(sessions)
    assert incremental.training_dates == rebuilt.training_dates
    assert incremental.consistency_score == rebuilt.consistency_score
    assert {k: pr.volume for k, pr in incremental.personal_records.items()} == {
        k: pr.volume for k, pr in rebuilt.personal_records.items()
    }
