"""PostgreSQL document store for sessions, summaries and jobs.

Every psycopg failure is re-raised as ``StoreError`` so callers see one
typed failure for "the store is unavailable", regardless of which query
broke. Nothing here retries: the worker owns retry policy.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Json

from .models import SessionRecord, UserAnalyticsSummary

logger = logging.getLogger(__name__)

JOB_NOTIFY_CHANNEL = "liftlog_jobs"


class StoreError(Exception):
    """A read, write or query against the store failed."""

    def __init__(self, operation: str, user_id: str | None, detail: str) -> None:
        self.operation = operation
        self.user_id = user_id
        self.detail = detail
        super().__init__(f"{operation} failed for user={user_id}: {detail}")


class SummaryConflictError(StoreError):
    """The summary changed between read and write (lost-update guard)."""


@contextmanager
def _store_call(operation: str, user_id: str | None) -> Iterator[None]:
    try:
        yield
    except psycopg.Error as exc:
        raise StoreError(operation, user_id, str(exc)) from exc


def _session_from_row(row: dict[str, Any]) -> SessionRecord:
    return SessionRecord.model_validate({
        "id": row["id"],
        "user_id": row["user_id"],
        "routine_id": row.get("routine_id"),
        "routine_name": row.get("routine_name"),
        "day_index": row.get("day_index") or 0,
        "duration_seconds": row.get("duration_seconds") or 0,
        "performed_at": row.get("performed_at"),
        "notes": row.get("notes"),
        "exercises": row.get("exercises") or [],
    })


def _session_columns(session: SessionRecord) -> dict[str, Any]:
    dumped = session.model_dump(mode="json")
    return {
        "routine_id": session.routine_id,
        "routine_name": session.routine_name,
        "day_index": session.day_index,
        "duration_seconds": session.duration_seconds,
        "performed_at": session.performed_at,
        "notes": session.notes,
        "exercises": Json(dumped["exercises"]),
    }


def _summary_from_row(row: dict[str, Any]) -> UserAnalyticsSummary:
    data = dict(row["data"] or {})
    data["user_id"] = str(row["user_id"])
    data["version"] = row["version"]
    data["updated_at"] = row["updated_at"]
    return UserAnalyticsSummary.model_validate(data)


async def acquire_user_lock(conn: psycopg.AsyncConnection[Any], user_id: str) -> None:
    """Serialize all summary work for the same user until the transaction ends."""
    with _store_call("acquire_user_lock", user_id):
        await conn.execute(
            "SELECT pg_advisory_xact_lock(hashtext(%s)::bigint)",
            (str(user_id),),
        )


async def load_summary(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    *,
    for_update: bool = False,
) -> UserAnalyticsSummary | None:
    query = "SELECT user_id, data, version, updated_at FROM user_analytics WHERE user_id = %s"
    if for_update:
        query += " FOR UPDATE"
    with _store_call("load_summary", user_id):
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(query, (user_id,))
            row = await cur.fetchone()
    if row is None:
        return None
    return _summary_from_row(row)


async def save_summary(
    conn: psycopg.AsyncConnection[Any],
    summary: UserAnalyticsSummary,
    *,
    expected_version: int,
) -> UserAnalyticsSummary:
    """Write ``summary`` only if the stored version still equals ``expected_version``.

    ``expected_version == 0`` means "no document yet". Raises
    ``SummaryConflictError`` when another writer got there first.
    """
    user_id = summary.user_id
    document = Json(summary.to_document())
    with _store_call("save_summary", user_id):
        async with conn.cursor(row_factory=dict_row) as cur:
            if expected_version == 0:
                await cur.execute(
                    """
                    INSERT INTO user_analytics (user_id, data, version, updated_at)
                    VALUES (%s, %s, 1, NOW())
                    ON CONFLICT (user_id) DO NOTHING
                    RETURNING version, updated_at
                    """,
                    (user_id, document),
                )
            else:
                await cur.execute(
                    """
                    UPDATE user_analytics
                    SET data = %s, version = version + 1, updated_at = NOW()
                    WHERE user_id = %s AND version = %s
                    RETURNING version, updated_at
                    """,
                    (document, user_id, expected_version),
                )
            row = await cur.fetchone()

    if row is None:
        raise SummaryConflictError(
            "save_summary",
            user_id,
            f"summary version moved past {expected_version}",
        )
    return summary.model_copy(update={"version": row["version"], "updated_at": row["updated_at"]})


async def overwrite_summary(
    conn: psycopg.AsyncConnection[Any],
    summary: UserAnalyticsSummary,
) -> UserAnalyticsSummary:
    """Replace the document unconditionally (used by rebuild)."""
    user_id = summary.user_id
    with _store_call("overwrite_summary", user_id):
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                INSERT INTO user_analytics (user_id, data, version, updated_at)
                VALUES (%s, %s, 1, NOW())
                ON CONFLICT (user_id) DO UPDATE SET
                    data = EXCLUDED.data,
                    version = user_analytics.version + 1,
                    updated_at = NOW()
                RETURNING version, updated_at
                """,
                (user_id, Json(summary.to_document())),
            )
            row = await cur.fetchone()
    return summary.model_copy(update={"version": row["version"], "updated_at": row["updated_at"]})


async def load_sessions(
    conn: psycopg.AsyncConnection[Any], user_id: str
) -> list[SessionRecord]:
    """All sessions of a user, oldest first."""
    with _store_call("load_sessions", user_id):
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT id::text AS id, user_id, routine_id, routine_name, day_index,
                       duration_seconds, performed_at, notes, exercises
                FROM workout_sessions
                WHERE user_id = %s
                ORDER BY performed_at ASC NULLS FIRST, created_at ASC, id ASC
                """,
                (user_id,),
            )
            rows = await cur.fetchall()
    return [_session_from_row(row) for row in rows]


async def load_session_for_analytics(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    session_id: str,
) -> tuple[SessionRecord, datetime | None] | None:
    """Lock one session row; returns the session and when it was folded into the summary."""
    with _store_call("load_session", user_id):
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                SELECT id::text AS id, user_id, routine_id, routine_name, day_index,
                       duration_seconds, performed_at, notes, exercises,
                       analytics_applied_at
                FROM workout_sessions
                WHERE user_id = %s AND id = %s
                FOR UPDATE
                """,
                (user_id, session_id),
            )
            row = await cur.fetchone()
    if row is None:
        return None
    return _session_from_row(row), row["analytics_applied_at"]


async def mark_sessions_applied(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    session_ids: Sequence[str],
) -> int:
    """Stamp the given sessions as folded into the summary."""
    with _store_call("mark_sessions_applied", user_id):
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE workout_sessions SET analytics_applied_at = NOW()
                WHERE user_id = %s AND id = ANY(%s::uuid[])
                """,
                (user_id, list(session_ids)),
            )
            return cur.rowcount


async def insert_session(
    conn: psycopg.AsyncConnection[Any], session: SessionRecord
) -> str:
    columns = _session_columns(session)
    with _store_call("insert_session", session.user_id):
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                INSERT INTO workout_sessions (
                    user_id, routine_id, routine_name, day_index, duration_seconds,
                    performed_at, notes, exercises
                )
                VALUES (%s, %s, %s, %s, %s, COALESCE(%s, NOW()), %s, %s)
                RETURNING id::text AS id
                """,
                (
                    session.user_id,
                    columns["routine_id"],
                    columns["routine_name"],
                    columns["day_index"],
                    columns["duration_seconds"],
                    columns["performed_at"],
                    columns["notes"],
                    columns["exercises"],
                ),
            )
            row = await cur.fetchone()
    return row["id"]


async def replace_session(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    session_id: str,
    session: SessionRecord,
) -> bool:
    columns = _session_columns(session)
    with _store_call("replace_session", user_id):
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE workout_sessions
                SET routine_id = %s, routine_name = %s, day_index = %s,
                    duration_seconds = %s, performed_at = COALESCE(%s, performed_at),
                    notes = %s, exercises = %s
                WHERE user_id = %s AND id = %s
                """,
                (
                    columns["routine_id"],
                    columns["routine_name"],
                    columns["day_index"],
                    columns["duration_seconds"],
                    columns["performed_at"],
                    columns["notes"],
                    columns["exercises"],
                    user_id,
                    session_id,
                ),
            )
            return cur.rowcount > 0


async def delete_sessions(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    session_ids: Sequence[str],
) -> int:
    with _store_call("delete_sessions", user_id):
        async with conn.cursor() as cur:
            await cur.execute(
                "DELETE FROM workout_sessions WHERE user_id = %s AND id = ANY(%s::uuid[])",
                (user_id, list(session_ids)),
            )
            return cur.rowcount


async def enqueue_job(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    job_type: str,
    payload: dict[str, Any],
    max_retries: int = 3,
) -> int:
    """Insert a background job and wake listening workers on commit."""
    with _store_call("enqueue_job", user_id):
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                INSERT INTO background_jobs (user_id, job_type, payload, max_retries)
                VALUES (%s, %s, %s, %s)
                RETURNING id
                """,
                (user_id, job_type, Json({**payload, "user_id": user_id}), max_retries),
            )
            row = await cur.fetchone()
            await cur.execute("SELECT pg_notify(%s, %s)", (JOB_NOTIFY_CHANNEL, job_type))
    logger.debug("Enqueued job %d (type=%s) for user=%s", row["id"], job_type, user_id)
    return row["id"]


async def supersede_pending_jobs(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    job_type: str,
) -> int:
    """Complete still-pending jobs of ``job_type`` whose work a rebuild already covers."""
    with _store_call("supersede_pending_jobs", user_id):
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE background_jobs
                SET status = 'completed', completed_at = NOW(),
                    error_message = 'superseded by analytics.rebuild'
                WHERE user_id = %s AND job_type = %s AND status = 'pending'
                """,
                (user_id, job_type),
            )
            return cur.rowcount
