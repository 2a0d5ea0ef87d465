import os
from dataclasses import dataclass


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    database_url: str
    listen_database_url: str
    poll_interval_seconds: float = 5.0
    batch_size: int = 10
    max_retries: int = 3
    health_port: int = 8081
    log_format: str = "json"
    statement_timeout_ms: int = 5000
    bootstrap_schema: bool = True

    @classmethod
    def from_env(cls) -> "Config":
        database_url = os.environ.get("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL must be set")

        listen_database_url = (
            os.environ.get("LIFTLOG_WORKER_LISTEN_DATABASE_URL", "").strip() or database_url
        )

        return cls(
            database_url=database_url,
            listen_database_url=listen_database_url,
            poll_interval_seconds=float(os.environ.get("LIFTLOG_POLL_INTERVAL", "5.0")),
            batch_size=int(os.environ.get("LIFTLOG_BATCH_SIZE", "10")),
            max_retries=int(os.environ.get("LIFTLOG_MAX_RETRIES", "3")),
            health_port=int(os.environ.get("LIFTLOG_HEALTH_PORT", "8081")),
            log_format=os.environ.get("LIFTLOG_LOG_FORMAT", "json"),
            statement_timeout_ms=int(os.environ.get("LIFTLOG_STATEMENT_TIMEOUT_MS", "5000")),
            bootstrap_schema=_env_flag("LIFTLOG_BOOTSTRAP_SCHEMA", True),
        )
