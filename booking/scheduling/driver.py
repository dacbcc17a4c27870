import logging
import threading
import time
from enum import Enum
from typing import Callable

from booking.scheduling.reminders import TickSummary

logger = logging.getLogger(__name__)


class DriverState(str, Enum):
    IDLE = 'idle'
    RUNNING = 'running'


class SchedulerDriver:
    """Runs ``job`` on a fixed interval, never twice at once within this process.

    A tick that arrives while the previous one is still running is skipped
    (logged as SkippedOverlap). Other processes may run their own drivers
    against the same database; the reminder claim keeps that safe.
    """

    def __init__(
        self,
        job: Callable[[], TickSummary],
        interval_seconds: float = 60.0,
        name: str = 'reminders',
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval_seconds <= 0:
            raise ValueError('interval_seconds must be positive')
        self._job = job
        self._clock = clock
        self.interval_seconds = interval_seconds
        self.name = name
        self._running = threading.Lock()
        self.skipped_ticks = 0

    @property
    def state(self) -> DriverState:
        return DriverState.RUNNING if self._running.locked() else DriverState.IDLE

    def tick(self) -> TickSummary | None:
        if not self._running.acquire(blocking=False):
            self.skipped_ticks += 1
            logger.info("SkippedOverlap: %s tick skipped, previous tick still running", self.name)
            return None

        try:
            return self._job()
        except Exception as e:
            logger.error("%s tick failed (%s: %s)", self.name, type(e).__name__, e, exc_info=True)
            return None
        finally:
            self._running.release()

    def run_forever(self, stop_event: threading.Event | None = None) -> None:
        """Tick at a fixed rate until ``stop_event`` is set.

        Deadlines advance by the interval from the first tick, so a slow job
        shortens the next wait instead of pushing every later tick back. A job
        that overruns a whole interval starts the next tick immediately.
        """
        stop_event = stop_event or threading.Event()
        logger.info("Driver %s started. Interval=%ss", self.name, self.interval_seconds)

        next_run = self._clock()
        while not stop_event.is_set():
            self.tick()
            next_run += self.interval_seconds
            now = self._clock()
            if next_run < now:
                logger.warning("Driver %s tick overran its interval by %.1fs", self.name, now - next_run)
                next_run = now
            stop_event.wait(next_run - now)

        logger.info("Driver %s stopped", self.name)
