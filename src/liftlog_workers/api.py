"""Read and write operations used by the app backend and the operator CLI.

Reads never modify state. Writes only persist sessions and enqueue jobs;
the summary itself is changed exclusively by the job handlers. Callers own
the transaction: jobs become visible (and NOTIFY fires) on commit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import asdict
from datetime import datetime
from typing import Any

import psycopg

from . import session_stats, store
from .handlers.analytics_summary import REBUILD_JOB, SESSION_RECORDED_JOB
from .models import SessionRecord, UserAnalyticsSummary
from .utils import resolve_now

logger = logging.getLogger(__name__)


async def get_summary(
    conn: psycopg.AsyncConnection[Any], user_id: str
) -> UserAnalyticsSummary | None:
    return await store.load_summary(conn, user_id)


async def muscle_distribution(
    conn: psycopg.AsyncConnection[Any], user_id: str
) -> list[session_stats.MuscleShare]:
    sessions = await store.load_sessions(conn, user_id)
    return session_stats.muscle_distribution(sessions)


async def volume_progression(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    weeks: int = session_stats.DEFAULT_PROGRESSION_WEEKS,
    now: datetime | None = None,
) -> list[session_stats.VolumePoint]:
    sessions = await store.load_sessions(conn, user_id)
    return session_stats.volume_progression(sessions, weeks=weeks, now=now)


async def user_rank(
    conn: psycopg.AsyncConnection[Any], user_id: str
) -> session_stats.UserRank:
    sessions = await store.load_sessions(conn, user_id)
    return session_stats.user_rank(sessions)


def heatmap(sessions: Iterable[SessionRecord]) -> dict[str, float]:
    """Muscle heatmap of a caller-chosen session slice (e.g. the last week)."""
    return session_stats.heatmap(sessions)


async def progress_overview(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Everything the progress screen shows, computed from one snapshot.

    JSON-ready: dataclasses are converted to dicts.
    """
    now = resolve_now(now)
    summary = await store.load_summary(conn, user_id)
    sessions = await store.load_sessions(conn, user_id)
    distribution = session_stats.muscle_distribution(sessions)

    return {
        "user_id": user_id,
        "summary": summary.model_dump(mode="json") if summary is not None else None,
        "muscle_distribution": [asdict(share) for share in distribution],
        "lagging_zone": session_stats.find_lagging_zone(distribution),
        "volume_progression": [
            asdict(point) for point in session_stats.volume_progression(sessions, now=now)
        ],
        "weekly_volume_change": asdict(session_stats.weekly_volume_change(sessions, now=now)),
        "rank": asdict(session_stats.user_rank(sessions)),
        "heatmap": session_stats.heatmap(sessions),
        "daily_activity": session_stats.daily_activity(sessions, now=now),
        "estimated_1rm": asdict(session_stats.estimated_1rm_progression(sessions)),
        "week_streak": session_stats.current_week_streak(sessions, now=now),
        "best_streak": session_stats.best_streak(sessions),
        "training_metrics": asdict(session_stats.training_metrics(sessions, now=now)),
    }


async def record_session(
    conn: psycopg.AsyncConnection[Any],
    session: SessionRecord,
    max_retries: int = 3,
) -> str:
    """Persist a completed session and enqueue its incremental summary update."""
    session_id = await store.insert_session(conn, session)
    await store.enqueue_job(
        conn,
        session.user_id,
        SESSION_RECORDED_JOB,
        {"session_id": session_id},
        max_retries=max_retries,
    )
    logger.info(
        "Recorded session %s for user=%s (%d exercises)",
        session_id,
        session.user_id,
        len(session.exercises),
        extra={"liftlog_user_id": session.user_id},
    )
    return session_id


async def rebuild_for_user(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    max_retries: int = 3,
) -> int:
    """Enqueue a full rebuild; returns the job id."""
    return await store.enqueue_job(conn, user_id, REBUILD_JOB, {}, max_retries=max_retries)


async def update_session(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    session_id: str,
    session: SessionRecord,
) -> bool:
    """Replace a session's contents. An edit can lower totals, so it triggers a rebuild."""
    updated = await store.replace_session(conn, user_id, session_id, session)
    if updated:
        await rebuild_for_user(conn, user_id)
    else:
        logger.warning(
            "Session %s of user=%s not found, nothing updated",
            session_id,
            user_id,
            extra={"liftlog_user_id": user_id},
        )
    return updated


async def delete_sessions(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    session_ids: Sequence[str],
) -> int:
    """Delete sessions and enqueue a rebuild; returns the number removed."""
    if not session_ids:
        return 0
    deleted = await store.delete_sessions(conn, user_id, session_ids)
    if deleted:
        await rebuild_for_user(conn, user_id)
    logger.info(
        "Deleted %d of %d sessions for user=%s",
        deleted,
        len(session_ids),
        user_id,
        extra={"liftlog_user_id": user_id},
    )
    return deleted
