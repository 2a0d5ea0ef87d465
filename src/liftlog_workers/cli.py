"""Operator CLI: inspect and repair a user's analytics from the shell.

Examples:
    liftlog-analytics summary --user-id u1
    liftlog-analytics rebuild --user-id u1            # recompute now
    liftlog-analytics rebuild --user-id u1 --enqueue  # let the worker do it
    liftlog-analytics stats --user-id u1 --weeks 8
"""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any, Sequence

from . import api
from .config import Config
from .handlers.analytics_summary import rebuild
from .logging import setup_logging
from .worker import connect


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="liftlog-analytics",
        description="Inspect or rebuild per-user training analytics.",
    )
    parser.add_argument(
        "--log-format",
        default="text",
        choices=("json", "text"),
        help="Log output format (logs go to stderr, results to stdout).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    summary = sub.add_parser("summary", help="Print the stored analytics summary.")
    summary.add_argument("--user-id", required=True)

    rebuild_cmd = sub.add_parser("rebuild", help="Recompute the summary from all sessions.")
    rebuild_cmd.add_argument("--user-id", required=True)
    rebuild_cmd.add_argument(
        "--enqueue",
        action="store_true",
        help="Enqueue an analytics.rebuild job instead of rebuilding in-process.",
    )

    stats = sub.add_parser("stats", help="Print the progress overview statistics.")
    stats.add_argument("--user-id", required=True)
    stats.add_argument(
        "--weeks",
        type=int,
        default=None,
        help="Override the volume progression window (weeks).",
    )
    return parser


async def _run(args: argparse.Namespace, config: Config) -> int:
    result: Any
    async with await connect(config) as conn:
        if args.command == "summary":
            summary = await api.get_summary(conn, args.user_id)
            result = summary.model_dump(mode="json") if summary is not None else None
        elif args.command == "rebuild":
            if args.enqueue:
                job_id = await api.rebuild_for_user(
                    conn, args.user_id, max_retries=config.max_retries
                )
                result = {"user_id": args.user_id, "job_id": job_id, "status": "enqueued"}
            else:
                async with conn.transaction():
                    summary = await rebuild(conn, args.user_id)
                result = summary.model_dump(mode="json")
            await conn.commit()
        else:
            result = await api.progress_overview(conn, args.user_id)
            if args.weeks is not None:
                points = await api.volume_progression(conn, args.user_id, weeks=args.weeks)
                result["volume_progression"] = [
                    {"label": p.label, "value": p.value, "week": p.week} for p in points
                ]

    print(json.dumps(result, indent=2, sort_keys=True))
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    config = Config.from_env()
    setup_logging(args.log_format)
    raise SystemExit(asyncio.run(_run(args, config)))


if __name__ == "__main__":
    main()
