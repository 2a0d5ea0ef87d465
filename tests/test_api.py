"""Tests for the read/write API with the store patched out."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from liftlog_workers import api
from liftlog_workers.cli import _build_parser
from liftlog_workers.models import ExerciseLog, SessionRecord, SetLog, UserAnalyticsSummary

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def _session(days_ago: int, exercise_id: str, weight: float, reps: int) -> SessionRecord:
    return SessionRecord(
        user_id="u1",
        performed_at=NOW - timedelta(days=days_ago),
        exercises=[ExerciseLog(exercise_id=exercise_id, name=exercise_id, sets=[SetLog(weight=weight, reps=reps)])],
    )


_HISTORY = [
    _session(0, "chest_bench_press_bar", 100, 10),
    _session(1, "back_deadlift", 150, 5),
    _session(9, "legs_squat_bar_back", 120, 5),
]


class TestReads:
    @pytest.mark.asyncio
    async def test_muscle_distribution_uses_stored_sessions(self):
        conn = MagicMock()
        with patch("liftlog_workers.api.store.load_sessions", new_callable=AsyncMock, return_value=_HISTORY) as load:
            shares = await api.muscle_distribution(conn, "u1")

        load.assert_awaited_once_with(conn, "u1")
        assert [s.target_zone for s in shares] == ["chest", "back", "legs"]

    @pytest.mark.asyncio
    async def test_volume_progression_window(self):
        with patch("liftlog_workers.api.store.load_sessions", new_callable=AsyncMock, return_value=_HISTORY):
            points = await api.volume_progression(MagicMock(), "u1", weeks=2, now=NOW)
        assert [p.value for p in points] == [600, 1750]

    @pytest.mark.asyncio
    async def test_progress_overview_is_json_ready(self):
        summary = UserAnalyticsSummary(user_id="u1", total_workouts=3, version=2)
        with patch("liftlog_workers.api.store.load_sessions", new_callable=AsyncMock, return_value=_HISTORY), \
             patch("liftlog_workers.api.store.load_summary", new_callable=AsyncMock, return_value=summary):
            overview = await api.progress_overview(MagicMock(), "u1", now=NOW)

        json.dumps(overview)
        assert overview["summary"]["total_workouts"] == 3
        assert overview["weekly_volume_change"] == {"current": 1750, "previous": 600, "percentage_change": 192}
        assert overview["training_metrics"] == {"streak_days": 2, "total_volume_7d": 1750}
        assert overview["best_streak"] == 1
        assert overview["rank"]["label"] == "Regular"
        assert overview["heatmap"]["gluteal"] == 1.0
        assert len(overview["daily_activity"]) == 90

    def test_heatmap_is_pure(self):
        assert api.heatmap(_HISTORY[:1]) == {"chest": 1.0}


class TestWrites:
    @pytest.mark.asyncio
    async def test_record_session_enqueues_incremental_update(self):
        conn = MagicMock()
        with patch("liftlog_workers.api.store.insert_session", new_callable=AsyncMock, return_value="s1"), \
             patch("liftlog_workers.api.store.enqueue_job", new_callable=AsyncMock, return_value=1) as enqueue:
            session_id = await api.record_session(conn, _HISTORY[0])

        assert session_id == "s1"
        enqueue.assert_awaited_once_with(
            conn, "u1", "analytics.session_recorded", {"session_id": "s1"}, max_retries=3
        )

    @pytest.mark.asyncio
    async def test_update_session_triggers_rebuild(self):
        with patch("liftlog_workers.api.store.replace_session", new_callable=AsyncMock, return_value=True), \
             patch("liftlog_workers.api.store.enqueue_job", new_callable=AsyncMock, return_value=5) as enqueue:
            assert await api.update_session(MagicMock(), "u1", "s1", _HISTORY[0]) is True

        assert enqueue.await_args.args[2] == "analytics.rebuild"

    @pytest.mark.asyncio
    async def test_update_missing_session_does_not_rebuild(self):
        with patch("liftlog_workers.api.store.replace_session", new_callable=AsyncMock, return_value=False), \
             patch("liftlog_workers.api.store.enqueue_job", new_callable=AsyncMock) as enqueue:
            assert await api.update_session(MagicMock(), "u1", "s1", _HISTORY[0]) is False
        enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_sessions(self):
        with patch("liftlog_workers.api.store.delete_sessions", new_callable=AsyncMock, return_value=2), \
             patch("liftlog_workers.api.store.enqueue_job", new_callable=AsyncMock) as enqueue:
            assert await api.delete_sessions(MagicMock(), "u1", ["s1", "s2"]) == 2
            assert await api.delete_sessions(MagicMock(), "u1", []) == 0

        enqueue.assert_awaited_once()


class TestCliParser:
    def test_subcommands(self):
        parser = _build_parser()
        args = parser.parse_args(["rebuild", "--user-id", "u1", "--enqueue"])
        assert (args.command, args.user_id, args.enqueue) == ("rebuild", "u1", True)

        args = parser.parse_args(["stats", "--user-id", "u1", "--weeks", "8"])
        assert args.weeks == 8

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args([])
