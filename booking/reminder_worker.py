"""Reminder worker process.

Usage:
    python -m booking.reminder_worker          # tick every REMINDER_TICK_SECONDS
    python -m booking.reminder_worker --once   # single tick, then exit
"""
import argparse
import logging
import signal
import threading
from functools import partial
from threading import Lock

from booking.core import config
from booking.database import SessionLocal
from booking.messaging import Messenger, build_messenger
from booking.scheduling.calendar import local_now
from booking.scheduling.driver import SchedulerDriver
from booking.scheduling.reminders import TickSummary, run_reminder_batch

logger = logging.getLogger(__name__)

_driver: SchedulerDriver | None = None
_driver_lock = Lock()


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def run_reminder_tick(messenger: Messenger, session_factory=SessionLocal) -> TickSummary:
    return run_reminder_batch(
        session_factory,
        messenger,
        now=local_now(config.BUSINESS_TIMEZONE),
        lead_time_minutes=config.REMINDER_LEAD_MINUTES,
        tolerance_minutes=config.REMINDER_TOLERANCE_MINUTES,
        max_attempts=config.REMINDER_MAX_ATTEMPTS,
        limit=config.REMINDER_BATCH_LIMIT,
        country_code=config.DEFAULT_COUNTRY_CODE,
    )


def build_driver(messenger: Messenger | None = None, session_factory=SessionLocal) -> SchedulerDriver:
    job = partial(run_reminder_tick, messenger or build_messenger(), session_factory)
    return SchedulerDriver(job, interval_seconds=config.REMINDER_TICK_SECONDS)


def get_driver() -> SchedulerDriver:
    """The process-wide driver, shared by the worker loop and the HTTP trigger."""
    global _driver

    if _driver is None:
        with _driver_lock:
            if _driver is None:
                _driver = build_driver()
    return _driver


def main() -> int:
    parser = argparse.ArgumentParser(description="Appointment reminder worker")
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit")
    args = parser.parse_args()

    _setup_logging()
    config.validate_runtime_config()

    from booking.main import initialize_database

    initialize_database()
    driver = get_driver()

    if args.once:
        summary = driver.tick()
        return 0 if summary is not None and not summary.errors else 1

    stop_event = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop_event.set())
    try:
        driver.run_forever(stop_event)
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping reminder worker")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
