from __future__ import annotations

import random
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .transaction import Transaction

MINIMUM_INTERVAL = 0.001


def retry_interval(
    min_delay: float, max_delay: float, max_attempts: int
) -> float:
    """Width of one backoff step, in seconds"""
    if max_attempts <= 0:
        return 0.0
    return max((max_delay - min_delay) / (max_attempts + 1), MINIMUM_INTERVAL)


class Backoff:
    """Delay calculator for the retry loop.

    With ``min_delay < max_delay`` each retry moves the window forward by
    ``interval * attempts`` and picks a random delay inside
    ``[window, window + interval)``. Equal bounds give a constant delay.
    Anything else gives no delay at all.
    """

    def __init__(
        self, min_delay: float, max_delay: float, max_attempts: int
    ) -> None:
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.interval = retry_interval(min_delay, max_delay, max_attempts)
        self._window = min_delay

    @classmethod
    def for_transaction(cls, transaction: Transaction) -> Backoff:
        return cls(
            transaction.min_retry_delay,
            transaction.max_retry_delay,
            transaction.max_attempts,
        )

    def next_delay(self, attempts: int) -> float:
        if self.min_delay < self.max_delay:
            self._window += self.interval * attempts
            return random.uniform(self._window, self._window + self.interval)
        if self.min_delay == self.max_delay:
            return self.min_delay
        return 0.0
