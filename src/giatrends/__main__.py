"""CLI entry-point: ``python -m giatrends run|growth|insights|cleanup``."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from giatrends import config
from giatrends.pipeline import (
    run_cleanup,
    run_growth,
    run_insights,
    run_pipeline,
    setup_logging,
)
from giatrends.store import TrendStore


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="giatrends",
        description="Normalize, score and cluster harvested fashion posts into trends.",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=config.DB_PATH,
        help=f"SQLite database path (default: {config.DB_PATH}).",
    )
    sub = parser.add_subparsers(dest="command")

    # ── run ────────────────────────────────────────────────────────────
    run_parser = sub.add_parser("run", help="Ingest a JSON batch of raw records.")
    run_parser.add_argument("input", type=Path, help="JSON file with raw records.")
    run_parser.add_argument(
        "--vocabulary",
        type=Path,
        default=None,
        help="Vocabulary YAML (default: config/vocabulary.yml).",
    )
    run_parser.add_argument(
        "--skip-insights",
        action="store_true",
        help="Cluster and score but skip LLM insight generation.",
    )

    # ── jobs ──────────────────────────────────────────────────────────
    sub.add_parser("growth", help="Recompute growth for all active clusters.")
    sub.add_parser("insights", help="Generate insights for pending clusters.")
    cleanup_parser = sub.add_parser("cleanup", help="Deactivate stale clusters.")
    cleanup_parser.add_argument(
        "--days",
        type=int,
        default=config.STALE_AFTER_DAYS,
        help=f"Inactivity window in days (default: {config.STALE_AFTER_DAYS}).",
    )

    args = parser.parse_args(argv)

    if args.command == "run":
        run_pipeline(
            input_path=args.input,
            db_path=args.db,
            vocabulary_path=args.vocabulary,
            skip_insights=args.skip_insights,
        )
        return

    if args.command not in ("growth", "insights", "cleanup"):
        parser.print_help()
        sys.exit(1)

    setup_logging()
    store = TrendStore(db_path=args.db)
    if args.command == "growth":
        run_growth(store)
    elif args.command == "insights":
        run_insights(store)
    else:
        run_cleanup(store, days=args.days)


if __name__ == "__main__":
    main()
