"""
Exponential backoff for dial retries.
"""


class ExponentialBackoff:
    """
    Geometric delay sequence capped at a maximum.

    Delays start at ``initial`` and are multiplied by ``factor`` after each
    call to :meth:`next_delay`, never exceeding ``maximum``. The number of
    retries is unbounded; only the delay is bounded.
    """

    def __init__(self, initial: float, maximum: float, factor: float = 2.0):
        if initial <= 0:
            raise ValueError("initial delay must be positive")
        if maximum < initial:
            raise ValueError("maximum delay must be greater than or equal to initial delay")
        if factor < 1:
            raise ValueError("factor must be at least 1")

        self.initial = initial
        self.maximum = maximum
        self.factor = factor
        self.attempts = 0
        self._current = initial

    def next_delay(self) -> float:
        """Return the delay before the next retry and advance the sequence."""
        delay = min(self._current, self.maximum)
        self._current = min(self._current * self.factor, self.maximum)
        self.attempts += 1
        return delay

    def reset(self) -> None:
        """Restart the sequence at the initial delay."""
        self._current = self.initial
        self.attempts = 0
