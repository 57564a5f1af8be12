"""
Exponential Backoff Module
Retry policy with capped exponential delays, used to guard the sync bootstrap.
"""

import random
import threading
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from issue_sync.exceptions import RetryCancelled
from issue_sync.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


class ExponentialBackoff:
    """
    Retries an operation with exponentially growing, capped delays.

    A ``max_attempts`` of zero or less retries forever. One instance tracks
    the attempts of a single long-lived operation; call ``reset()`` before
    reusing it for another run.
    """

    def __init__(
        self,
        initial_delay: float,
        max_delay: float = 30.0,
        max_attempts: int = 5,
        factor: float = 2.0,
        jitter: bool = True,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        sleep: Callable[[float], None] = None
    ):
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.factor = factor
        self.jitter = jitter
        self.retry_on = retry_on
        self._sleep = sleep
        self._attempt = 0

    @property
    def attempt(self) -> int:
        """Number of failed attempts since creation or the last reset."""
        return self._attempt

    def execute(self, operation: Callable[[], T], cancel: Optional[threading.Event] = None) -> T:
        """
        Run ``operation`` until it succeeds or the attempt budget is spent.

        Args:
            operation: Zero-argument callable to run
            cancel: Event that stops the retries; it is checked before every
                attempt and ends a pending delay early

        Returns:
            Whatever ``operation`` returns

        Raises:
            RetryCancelled: If ``cancel`` was set before the operation succeeded
            The last failure once the attempts are exhausted, or any
            exception not listed in ``retry_on`` straight away.
        """
        while True:
            if cancel is not None and cancel.is_set():
                logger.info(f"Retries cancelled after {self._attempt} failed attempts")
                raise RetryCancelled(f"Cancelled after {self._attempt} failed attempts")

            try:
                return operation()
            except self.retry_on as e:
                if self.max_attempts > 0 and self._attempt >= self.max_attempts - 1:
                    logger.error(f"Giving up after {self._attempt + 1} attempts: {e}")
                    raise

                delay = self.calculate_delay()
                logger.warning(
                    f"Attempt {self._attempt + 1} failed: {e}. "
                    f"Retrying in {delay:.2f} seconds..."
                )
                self._wait(delay, cancel)
                self._attempt += 1

    def _wait(self, delay: float, cancel: Optional[threading.Event]) -> None:
        if self._sleep is not None:
            self._sleep(delay)
        elif cancel is not None:
            cancel.wait(delay)
        else:
            time.sleep(delay)

    def calculate_delay(self, attempt: int = None) -> float:
        """
        Compute the delay before the next retry.

        Args:
            attempt: Attempt index to compute for; defaults to the current one

        Returns:
            ``min(initial_delay * factor ** attempt, max_delay)``, plus up to
            25% random extra when jitter is enabled
        """
        if attempt is None:
            attempt = self._attempt

        try:
            exponential_delay = self.initial_delay * (self.factor ** attempt)
        except OverflowError:
            # Unlimited retries eventually outgrow a float
            exponential_delay = self.max_delay
        bounded_delay = min(exponential_delay, self.max_delay)

        if not self.jitter:
            return bounded_delay

        return bounded_delay + bounded_delay * 0.25 * random.random()

    def reset(self) -> None:
        """Zero the attempt counter."""
        self._attempt = 0
