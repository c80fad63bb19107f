#!/usr/bin/env python3
"""
Recompute delivery spike counts once, outside the Celery schedule.

Usage:
    python scripts/compute_spike_counts.py [--as-of 2025-07-04] [--symbols INFY,TCS] [--workers 8]

Ctrl+C stops taking new symbols; rows already written are kept.
"""

import asyncio
import json
import logging
import os
import signal
import sys
from argparse import ArgumentParser
from datetime import date

# Add backend to path
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from deliverywatch.core.database import close_db
from deliverywatch.core.logging import setup_logging
from deliverywatch.services.spike_count_service import DeliverySpikeCountService

logger = logging.getLogger(__name__)


async def compute_spike_counts(as_of: date | None, symbols: list[str] | None, workers: int | None):
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        handles_sigint = True
    except NotImplementedError:
        handles_sigint = False  # Windows

    service = DeliverySpikeCountService(workers=workers)
    try:
        summary = await service.recompute_all(
            as_of_date=as_of,
            symbols=symbols,
            cancel_event=cancel_event,
        )
    finally:
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)
        await close_db()

    if summary.cancelled:
        logger.warning("Run cancelled after %d symbols", summary.succeeded + len(summary.failed))
    return summary


def main() -> int:
    parser = ArgumentParser(description="Recompute delivery spike counts")
    parser.add_argument("--as-of", type=date.fromisoformat, default=None, help="As-of date (YYYY-MM-DD), default today")
    parser.add_argument("--symbols", type=str, default=None, help="Comma separated symbols, default all active")
    parser.add_argument("--workers", type=int, default=None, help="Worker pool size")
    args = parser.parse_args()

    setup_logging()
    symbols = [s.strip().upper() for s in args.symbols.split(",") if s.strip()] if args.symbols else None

    summary = asyncio.run(compute_spike_counts(args.as_of, symbols, args.workers))
    print(json.dumps(summary.as_dict(), indent=2))
    return 1 if summary.failed else 0


if __name__ == "__main__":
    sys.exit(main())
