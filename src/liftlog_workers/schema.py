"""Table bootstrap for the worker's own storage.

Idempotent: safe to run on every worker start. Deployments that manage the
schema with migrations disable it via ``LIFTLOG_BOOTSTRAP_SCHEMA=false``.
"""

from __future__ import annotations

import logging
from typing import Any

import psycopg

from .store import StoreError

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS workout_sessions (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id TEXT NOT NULL,
        routine_id TEXT,
        routine_name TEXT,
        day_index INTEGER NOT NULL DEFAULT 0,
        duration_seconds DOUBLE PRECISION NOT NULL DEFAULT 0,
        performed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        notes TEXT,
        exercises JSONB NOT NULL DEFAULT '[]'::jsonb,
        analytics_applied_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_workout_sessions_user_performed
        ON workout_sessions (user_id, performed_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS user_analytics (
        user_id TEXT PRIMARY KEY,
        data JSONB NOT NULL,
        version INTEGER NOT NULL DEFAULT 1,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS background_jobs (
        id BIGSERIAL PRIMARY KEY,
        user_id TEXT NOT NULL,
        job_type TEXT NOT NULL,
        payload JSONB NOT NULL DEFAULT '{}'::jsonb,
        status TEXT NOT NULL DEFAULT 'pending',
        priority INTEGER NOT NULL DEFAULT 0,
        attempt INTEGER NOT NULL DEFAULT 0,
        max_retries INTEGER NOT NULL DEFAULT 3,
        error_message TEXT,
        scheduled_for TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        started_at TIMESTAMPTZ,
        completed_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_background_jobs_pending
        ON background_jobs (scheduled_for, priority DESC, id)
        WHERE status = 'pending'
    """,
)


async def ensure_schema(conn: psycopg.AsyncConnection[Any]) -> None:
    """Create missing tables and indexes, then commit."""
    try:
        for statement in SCHEMA_STATEMENTS:
            await conn.execute(statement)
        await conn.commit()
    except psycopg.Error as exc:
        raise StoreError("ensure_schema", None, str(exc)) from exc
    logger.info("Schema ready (%d statements)", len(SCHEMA_STATEMENTS))
