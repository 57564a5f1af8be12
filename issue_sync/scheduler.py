"""
Recurring Task Module
Runs a job on a fixed period without ever overlapping two runs.
"""

import threading
from datetime import datetime, timedelta
from typing import Callable

import pytz
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from issue_sync.utils.logger import get_logger

logger = get_logger(__name__)


class RecurringTask:
    """
    Cancellable periodic job.

    Each run is a one-shot job; the next one is only scheduled once the
    current run has returned, so the period is measured between the end of
    one run and the start of the next.
    """

    def __init__(
        self,
        func: Callable[[], object],
        interval_seconds: float,
        name: str = 'recurring-task',
        scheduler: BackgroundScheduler = None
    ):
        self._func = func
        self.interval_seconds = interval_seconds
        self.name = name
        self._scheduler = scheduler or BackgroundScheduler(timezone=pytz.UTC)
        self._lock = threading.Lock()
        self._started = False
        self._stopped = False

    @property
    def is_running(self) -> bool:
        return self._started and not self._stopped

    def start(self) -> None:
        """Start the scheduler and arm the first run one interval from now."""
        with self._lock:
            if self._started or self._stopped:
                return
            self._started = True
            self._scheduler.start()
            self._schedule_next()
        logger.info(f"Scheduled '{self.name}' every {self.interval_seconds} seconds")

    def _schedule_next(self) -> None:
        run_date = datetime.now(pytz.UTC) + timedelta(seconds=self.interval_seconds)
        self._scheduler.add_job(
            self._run,
            trigger=DateTrigger(run_date=run_date, timezone=pytz.UTC),
            name=self.name,
            misfire_grace_time=None
        )

    def _run(self) -> None:
        try:
            self._func()
        except Exception as e:
            logger.exception(f"Scheduled run of '{self.name}' failed: {e}")
        finally:
            with self._lock:
                if not self._stopped:
                    self._schedule_next()

    def stop(self, wait: bool = True) -> None:
        """
        Cancel future runs. A run already in progress is allowed to finish;
        with ``wait`` this call blocks until it has.

        Safe to call repeatedly or before ``start()``.
        """
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            if not self._started:
                return

        logger.info(f"Stopping '{self.name}'...")
        self._scheduler.shutdown(wait=wait)
        logger.info(f"'{self.name}' stopped")
