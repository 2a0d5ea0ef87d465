"""Aggregate update engine: store boundary and job handlers.

Both write paths run under a per-user advisory transaction lock, so two
sessions of the same user never fold into the summary concurrently. The
version column is checked on write as a second guard against lost updates
from writers that bypass the lock.

Job types:
- ``analytics.session_recorded`` (payload: user_id, session_id) folds one
  session into the summary. Sessions already stamped with
  ``analytics_applied_at`` are skipped, so a retried job is a no-op.
- ``analytics.rebuild`` (payload: user_id) recomputes the summary from the
  full history, e.g. after sessions were edited or deleted.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import psycopg

from ..aggregates import empty_summary, extract_input, fold_input, rebuild_summary
from ..metrics import (
    record_session_already_applied,
    record_summary_conflict,
    record_summary_written,
)
from ..models import SessionRecord, UserAnalyticsSummary, WorkoutAnalyticsInput
from ..registry import register
from ..store import (
    SummaryConflictError,
    acquire_user_lock,
    load_session_for_analytics,
    load_sessions,
    load_summary,
    mark_sessions_applied,
    overwrite_summary,
    save_summary,
    supersede_pending_jobs,
)

logger = logging.getLogger(__name__)

SESSION_RECORDED_JOB = "analytics.session_recorded"
REBUILD_JOB = "analytics.rebuild"


def _require(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None or not str(value).strip():
        raise ValueError(f"job payload is missing {key!r}")
    return str(value).strip()


async def apply_incremental(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    analytics_input: WorkoutAnalyticsInput,
    now: datetime | None = None,
) -> UserAnalyticsSummary:
    """Fold one session's contribution into the stored summary.

    Must run inside a transaction. Raises ``SummaryConflictError`` if the
    stored version moved between read and write.
    """
    await acquire_user_lock(conn, user_id)
    current = await load_summary(conn, user_id, for_update=True)
    base = current if current is not None else empty_summary(user_id)
    updated = fold_input(base, analytics_input, now=now)

    try:
        saved = await save_summary(conn, updated, expected_version=base.version)
    except SummaryConflictError:
        record_summary_conflict()
        logger.warning(
            "Summary version conflict for user=%s (expected version %d)",
            user_id,
            base.version,
            extra={"liftlog_user_id": user_id},
        )
        raise

    record_summary_written()
    logger.info(
        "Updated analytics for user=%s: workouts=%d, volume=%.1f, version=%d",
        user_id,
        saved.total_workouts,
        saved.total_volume,
        saved.version,
        extra={"liftlog_user_id": user_id},
    )
    return saved


async def rebuild(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    sessions: Sequence[SessionRecord] | None = None,
    now: datetime | None = None,
) -> UserAnalyticsSummary:
    """Recompute the summary from the full history and overwrite the stored one.

    Loads the history when ``sessions`` is not given. Every session that went
    into the result is stamped as applied.
    """
    await acquire_user_lock(conn, user_id)
    # row lock only; the document is replaced wholesale
    await load_summary(conn, user_id, for_update=True)

    history = await load_sessions(conn, user_id) if sessions is None else list(sessions)
    summary = rebuild_summary(user_id, history, now=now)
    saved = await overwrite_summary(conn, summary)

    # Only stamp what was folded; a session committed after the load keeps
    # its pending job.
    session_ids = [s.id for s in history if s.id]
    if session_ids:
        await mark_sessions_applied(conn, user_id, session_ids)

    record_summary_written()
    logger.info(
        "Rebuilt analytics for user=%s from %d sessions (version=%d)",
        user_id,
        len(history),
        saved.version,
        extra={"liftlog_user_id": user_id},
    )
    return saved


@register(SESSION_RECORDED_JOB)
async def handle_session_recorded(
    conn: psycopg.AsyncConnection[Any], payload: dict[str, Any]
) -> None:
    user_id = _require(payload, "user_id")
    session_id = _require(payload, "session_id")

    # Lock before the session row so concurrent rebuilds cannot interleave.
    await acquire_user_lock(conn, user_id)
    loaded = await load_session_for_analytics(conn, user_id, session_id)
    if loaded is None:
        logger.warning(
            "Session %s of user=%s no longer exists, skipping",
            session_id,
            user_id,
            extra={"liftlog_user_id": user_id},
        )
        return

    session, applied_at = loaded
    if applied_at is not None:
        record_session_already_applied()
        logger.info(
            "Session %s already applied at %s, skipping",
            session_id,
            applied_at.isoformat(),
            extra={"liftlog_user_id": user_id},
        )
        return

    await apply_incremental(conn, user_id, extract_input(session))
    await mark_sessions_applied(conn, user_id, [session_id])


@register(REBUILD_JOB)
async def handle_rebuild(
    conn: psycopg.AsyncConnection[Any], payload: dict[str, Any]
) -> None:
    user_id = _require(payload, "user_id")
    await acquire_user_lock(conn, user_id)
    superseded = await supersede_pending_jobs(conn, user_id, SESSION_RECORDED_JOB)
    if superseded:
        logger.info(
            "Superseded %d pending %s jobs for user=%s",
            superseded,
            SESSION_RECORDED_JOB,
            user_id,
            extra={"liftlog_user_id": user_id},
        )
    await rebuild(conn, user_id)
