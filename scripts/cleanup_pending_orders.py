#!/usr/bin/env python3
"""Cancels stale online payment attempts. Usage: python3 scripts/cleanup_pending_orders.py [--minutes 5]"""
import argparse
import logging
import sys
from datetime import timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlmodel import Session  # noqa: E402

from millet_pay.core.config import Settings  # noqa: E402
from millet_pay.core.database import build_engine, init_db  # noqa: E402
from millet_pay.logging import setup_logging  # noqa: E402
from millet_pay.services.events import ChangeFeed, log_change  # noqa: E402
from millet_pay.services.reaper import cancel_stale_orders  # noqa: E402


def main(argv: list[str] | None = None) -> int:
    settings = Settings()
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--minutes",
        type=int,
        default=settings.pending_order_timeout_minutes,
        help="Age after which a pending online order is cancelled",
    )
    args = parser.parse_args(argv)

    setup_logging(level=logging.INFO)
    engine = build_engine(settings.database_url)
    init_db(engine)
    feed = ChangeFeed()
    feed.subscribe("orders", log_change)
    with Session(engine) as db:
        result = cancel_stale_orders(db, timeout=timedelta(minutes=args.minutes), feed=feed)
    print(result.message)
    for order_id in result.order_ids:
        print("  cancelled:", order_id)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
