"""
Reminder process entry point.

Runs the appointment reminder sweep on a fixed interval, separately from
request handling. The booking core is normally embedded in the web
service; this process shares its stores when started from there.

Usage:
    Scheduled:    python main.py
    Single sweep: python main.py --once
"""

import argparse
import logging
import time

from pickup_booking.appointments.reminders import JOB_ID, build_scheduler
from pickup_booking.config import settings
from pickup_booking.container import build_core

logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the appointment reminder sweep")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one sweep immediately and exit",
    )
    parser.add_argument(
        "--hours-ahead",
        type=int,
        default=settings.reminders.hours_ahead,
        help="Remind appointments starting this many hours from now",
    )
    args = parser.parse_args()

    core = build_core()

    if args.once:
        logger.info("Running %s once", JOB_ID)
        result = core.reminders.run_sweep(args.hours_ahead)
        logger.info("Sweep result: %s", result.model_dump())
        return

    scheduler = build_scheduler(core.reminders)
    scheduler.start()
    logger.info("Reminder scheduler started for '%s'", settings.service_name)
    try:
        while True:
            time.sleep(60)
    except (KeyboardInterrupt, SystemExit):
        scheduler.shutdown()
        logger.info("Reminder scheduler stopped")


if __name__ == "__main__":
    main()
