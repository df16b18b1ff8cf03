#!/usr/bin/env python3
"""Run the market jobs once: price recalculation, buyback settlement and booking expiry."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sharepool.core.config import get_settings  # noqa: E402  (import after sys.path manipulation)
from sharepool.core.logger import configure_logging, get_logger, progress_manager, timeit  # noqa: E402
from sharepool.db.locks import ledger_locks  # noqa: E402
from sharepool.db.session import create_schema, get_sessionmaker  # noqa: E402
from sharepool.services.scheduler import CycleReport, MarketScheduler  # noqa: E402

logger = get_logger(__name__)

JOBS = ("pricing", "settlement", "expiry", "all")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("job", choices=JOBS, help="Which cycle to run")
    parser.add_argument("--create-schema", action="store_true", help="Create missing tables before running")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL for this run")
    return parser.parse_args()


def _summarise(report: CycleReport) -> None:
    if report.ok:
        logger.info("%s cycle finished: %s", report.name, report.details)
    else:
        logger.error("%s cycle finished with %d errors: %s", report.name, len(report.errors), report.errors)


def main() -> int:
    args = parse_args()
    settings = get_settings()
    configure_logging(settings.logging, app_name="sharepool-jobs", level=args.log_level)
    ledger_locks.set_timeout(settings.locks.acquire_timeout_seconds)

    if args.create_schema:
        logger.info("Creating ledger schema")
        create_schema()

    scheduler = MarketScheduler(get_sessionmaker(), settings.scheduler)
    runners = {
        "pricing": lambda: [scheduler.run_pricing_cycle()],
        "settlement": lambda: [scheduler.run_settlement_cycle()],
        "expiry": lambda: [scheduler.run_expiry_cycle()],
    }
    selected = list(runners) if args.job == "all" else [args.job]
    reports: list[CycleReport] = []
    with timeit(f"market jobs ({args.job})", logger=logger):
        for job in progress_manager.track(selected, description="market jobs", total=len(selected)):
            reports.extend(runners[job]())
    for report in reports:
        _summarise(report)
    return 0 if all(report.ok for report in reports) else 1


if __name__ == "__main__":
    sys.exit(main())
