#!/usr/bin/env python3
"""
Expire pending car assignment requests whose availability window has ended.

Loads the active configuration, connects to the configured database and
moves every pending request with available_end_date before the cut-off
date to expired.  Safe to run repeatedly (cron, systemd timer): requests
already expired, or moved on concurrently, are skipped.

Usage:
    python3 scripts/expire_requests.py
    python3 scripts/expire_requests.py --as-of 2026-01-31
    python3 scripts/expire_requests.py --database-url sqlite:///fleet.db --create-tables
"""

import argparse
import dataclasses
import sys
from datetime import date
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO date (YYYY-MM-DD): {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Expire stale pending car assignment requests.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration document")
    parser.add_argument(
        "--as-of", type=_parse_date, default=None,
        help="Cut-off date YYYY-MM-DD (default: today, UTC)",
    )
    parser.add_argument("--database-url", type=str, default=None, help="Override database.url")
    parser.add_argument(
        "--create-tables", action="store_true",
        help="Create missing tables before the sweep",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    from fleet_config import get_active_config
    from fleet_kernel.db.engine import create_tables, session_scope
    from fleet_services import FleetWorkflowService, init_from_config, retry_on_store_error

    config = get_active_config(args.config)
    if args.database_url:
        config = dataclasses.replace(
            config, database=dataclasses.replace(config.database, url=args.database_url),
        )

    init_from_config(config)
    if args.create_tables:
        create_tables()

    def _sweep() -> list:
        with session_scope() as session:
            return FleetWorkflowService(session, config).expire_stale_requests(args.as_of)

    expired = retry_on_store_error(_sweep, label="expire_requests")
    print(f"Expired {len(expired)} assignment request(s).")
    for request_id in expired:
        print(f"  {request_id}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
