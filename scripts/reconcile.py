"""
Reconcile README

Daily circulation job, meant to be triggered by cron (e.g. `0 9 * * *`):

1. Marks every active loan past its due date as overdue and recomputes its
   fine from the due date, notifying the patron when the day count moves
2. Sends one due-soon reminder per due date for loans due within
   LIBRIS_DUE_SOON_DAYS
3. Cancels reservation holds left unclaimed for LIBRIS_RESERVATION_EXPIRY_DAYS
   and offers the copy to the next patron in the queue

Safe to re-run: fines are recomputed, never added up.
"""

import argparse
import datetime
import logging
import sys
from libris.configs import LOG_LEVEL
from libris.core.api import LibrisAPI
from libris.core.exceptions import ReconciliationError

logger = logging.getLogger(__name__)


def parse_now(value):
    return datetime.datetime.fromisoformat(value) if value else None


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run the overdue/fine reconciliation")
    parser.add_argument("--now", type=parse_now, help="ISO timestamp to reconcile as of", default=None)
    parser.add_argument("--batch-size", type=int, help="Loans per batch", default=None)
    args = parser.parse_args(argv)

    try:
        report = LibrisAPI.run_reconciliation(now=args.now, batch_size=args.batch_size)
    except ReconciliationError as e:
        logger.error(f"[reconcile] run aborted: {e}")
        return 2
    print(report.model_dump_json(indent=2))
    return 1 if report.failed or report.sweep_error else 0


if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL.upper())
    sys.exit(main())
