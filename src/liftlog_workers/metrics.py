"""In-memory worker metrics, exposed via the health endpoint.

Asyncio is single-threaded, so plain dicts are safe without locking.
"""

import time

_start_time = time.monotonic()

_counters: dict[str, int] = {
    "jobs_processed": 0,
    "jobs_failed": 0,
    "jobs_dead": 0,
    "summaries_written": 0,
    "summary_conflicts": 0,
    "sessions_already_applied": 0,
}
_handlers: dict[str, dict[str, float]] = {}


def record_handler_invocation(job_type: str, duration_ms: float, success: bool) -> None:
    stats = _handlers.setdefault(job_type, {
        "invocations": 0,
        "successes": 0,
        "failures": 0,
        "total_duration_ms": 0.0,
    })
    stats["invocations"] += 1
    stats["total_duration_ms"] += duration_ms
    stats["successes" if success else "failures"] += 1


def _bump(name: str) -> None:
    _counters[name] += 1


def record_job_completed() -> None:
    _bump("jobs_processed")


def record_job_failed() -> None:
    _bump("jobs_failed")


def record_job_dead() -> None:
    _bump("jobs_dead")


def record_summary_written() -> None:
    _bump("summaries_written")


def record_summary_conflict() -> None:
    _bump("summary_conflicts")


def record_session_already_applied() -> None:
    _bump("sessions_already_applied")


def get_metrics() -> dict:
    """Snapshot of counters plus average handler latency."""
    handlers = {}
    for job_type, stats in _handlers.items():
        invocations = stats["invocations"]
        handlers[job_type] = {
            **stats,
            "avg_duration_ms": round(stats["total_duration_ms"] / invocations, 2)
            if invocations
            else 0.0,
        }
    return {
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        **_counters,
        "handlers": handlers,
    }


def reset_metrics() -> None:
    """Zero every counter (tests and long-running CLI sessions)."""
    for name in _counters:
        _counters[name] = 0
    _handlers.clear()
