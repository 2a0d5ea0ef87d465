import asyncio
import logging
import signal
import time
from typing import Any

import psycopg
from psycopg.rows import dict_row

from .config import Config
from .metrics import (
    record_handler_invocation,
    record_job_completed,
    record_job_dead,
    record_job_failed,
)
from .registry import get_handler
from .schema import ensure_schema
from .store import JOB_NOTIFY_CHANNEL

logger = logging.getLogger(__name__)


async def connect(config: Config, *, autocommit: bool = False) -> psycopg.AsyncConnection[Any]:
    """Open a connection with the configured statement timeout applied."""
    conn = await psycopg.AsyncConnection.connect(config.database_url, autocommit=autocommit)
    await conn.execute(
        "SELECT set_config('statement_timeout', %s, false)",
        (str(config.statement_timeout_ms),),
    )
    if not autocommit:
        await conn.commit()
    return conn


class Worker:
    def __init__(self, config: Config) -> None:
        self.config = config
        self._shutdown = asyncio.Event()

    async def run(self) -> None:
        """Main entry point: run listen + poll loops until shutdown."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._request_shutdown)

        logger.info(
            "Worker starting (poll_interval=%.1fs, batch_size=%d, statement_timeout=%dms)",
            self.config.poll_interval_seconds,
            self.config.batch_size,
            self.config.statement_timeout_ms,
        )
        if self.config.listen_database_url != self.config.database_url:
            logger.info("Worker LISTEN uses dedicated database URL")

        if self.config.bootstrap_schema:
            async with await connect(self.config) as conn:
                await ensure_schema(conn)

        async with asyncio.TaskGroup() as tg:
            tg.create_task(self._listen_loop())
            tg.create_task(self._poll_loop())

    def _request_shutdown(self) -> None:
        logger.info("Shutdown requested")
        self._shutdown.set()

    async def _listen_loop(self) -> None:
        """LISTEN for instant wake-up when sessions are recorded."""
        while not self._shutdown.is_set():
            try:
                async with await psycopg.AsyncConnection.connect(
                    self.config.listen_database_url, autocommit=True
                ) as conn:
                    await conn.execute(f"LISTEN {JOB_NOTIFY_CHANNEL}")
                    logger.info("Listening on %s channel", JOB_NOTIFY_CHANNEL)

                    # Only reconnect on connection loss (OperationalError),
                    # not on notify timeouts.
                    while not self._shutdown.is_set():
                        async for notify in conn.notifies(
                            timeout=self.config.poll_interval_seconds
                        ):
                            logger.debug("NOTIFY received: %s", notify.payload)
                            await self.process_batch()
                            if self._shutdown.is_set():
                                break
            except psycopg.OperationalError:
                if self._shutdown.is_set():
                    break
                logger.warning("LISTEN connection lost, reconnecting in 5s")
                await asyncio.sleep(5)

        logger.info("Listen loop stopped")

    async def _poll_loop(self) -> None:
        """Fallback polling: picks up retries and anything LISTEN missed."""
        while not self._shutdown.is_set():
            try:
                await asyncio.wait_for(
                    self._shutdown.wait(),
                    timeout=self.config.poll_interval_seconds,
                )
                break
            except TimeoutError:
                pass

            await self.process_batch()

        logger.info("Poll loop stopped")

    async def process_batch(self) -> int:
        """Claim and process a batch of pending jobs. Returns how many were claimed."""
        try:
            async with await connect(self.config) as conn:
                jobs = await self._claim_jobs(conn)
                await conn.commit()  # claims survive a crash mid-batch

                for job in jobs:
                    await self._process_job(conn, job)
                return len(jobs)
        except Exception:
            logger.exception("Error in process_batch")
            return 0

    async def _claim_jobs(
        self, conn: psycopg.AsyncConnection[Any]
    ) -> list[dict[str, Any]]:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                UPDATE background_jobs
                SET status = 'processing', started_at = NOW(), attempt = attempt + 1
                WHERE id IN (
                    SELECT id FROM background_jobs
                    WHERE status = 'pending' AND scheduled_for <= NOW()
                    ORDER BY scheduled_for, priority DESC, id
                    LIMIT %s
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING id, user_id, job_type, payload, attempt, max_retries
                """,
                (self.config.batch_size,),
            )
            return await cur.fetchall()

    async def _process_job(
        self, conn: psycopg.AsyncConnection[Any], job: dict[str, Any]
    ) -> None:
        """Run one job; the handler's writes and the completion commit together."""
        job_id = job["id"]
        job_type = job["job_type"]
        context = {
            "liftlog_job_id": job_id,
            "liftlog_job_type": job_type,
            "liftlog_user_id": job["user_id"],
        }

        handler = get_handler(job_type)
        if handler is None:
            logger.warning("No handler for job_type=%s (job_id=%d)", job_type, job_id, extra=context)
            record_job_dead()
            await self._fail_job(conn, job_id, f"No handler for job_type={job_type}")
            return

        payload = dict(job["payload"] or {})
        payload.setdefault("user_id", job["user_id"])

        start = time.monotonic()
        try:
            async with conn.transaction():
                await handler(conn, payload)
                await conn.execute(
                    """
                    UPDATE background_jobs
                    SET status = 'completed', completed_at = NOW(), error_message = NULL
                    WHERE id = %s
                    """,
                    (job_id,),
                )
        except Exception as exc:
            # conn.transaction() already rolled back the handler's writes
            duration_ms = (time.monotonic() - start) * 1000
            record_handler_invocation(job_type, duration_ms, success=False)
            logger.exception(
                "Job %d failed (type=%s)",
                job_id,
                job_type,
                extra={**context, "liftlog_duration_ms": round(duration_ms, 2)},
            )
            max_retries = job["max_retries"]
            if max_retries is None:
                max_retries = self.config.max_retries
            if job["attempt"] >= max_retries:
                await self._dead_job(conn, job_id, str(exc))
            else:
                record_job_failed()
                await self._retry_job(conn, job_id, job["attempt"], str(exc))
            return

        duration_ms = (time.monotonic() - start) * 1000
        record_handler_invocation(job_type, duration_ms, success=True)
        record_job_completed()
        logger.info(
            "Job %d completed (type=%s) in %.1fms",
            job_id,
            job_type,
            duration_ms,
            extra={**context, "liftlog_duration_ms": round(duration_ms, 2)},
        )

    async def _fail_job(
        self, conn: psycopg.AsyncConnection[Any], job_id: int, error: str
    ) -> None:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE background_jobs
                SET status = 'dead', error_message = %s, completed_at = NOW()
                WHERE id = %s
                """,
                (error, job_id),
            )
        await conn.commit()

    async def _dead_job(
        self, conn: psycopg.AsyncConnection[Any], job_id: int, error: str
    ) -> None:
        record_job_dead()
        logger.error("Job %d is dead after max retries: %s", job_id, error)
        await self._fail_job(conn, job_id, error)

    async def _retry_job(
        self,
        conn: psycopg.AsyncConnection[Any],
        job_id: int,
        attempt: int,
        error: str,
    ) -> None:
        backoff_seconds = 2**attempt
        logger.info("Job %d retrying in %ds (attempt=%d)", job_id, backoff_seconds, attempt)
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE background_jobs
                SET status = 'pending',
                    error_message = %s,
                    scheduled_for = NOW() + make_interval(secs => %s)
                WHERE id = %s
                """,
                (error, float(backoff_seconds), job_id),
            )
        await conn.commit()
