import time
from typing import Callable, Optional


class TimeBudget:
    """
    Wall-clock limit of a batch run.

    The budget is checked only between candidates: a running encode is never
    interrupted, so a run can overshoot the limit by the length of its last
    encode. A limit of 0 hours means unlimited.
    """

    def __init__(self, max_hours: float = 0.0, clock: Callable[[], float] = time.monotonic):
        self.max_hours = max_hours
        self._clock = clock
        self._started = clock()

    @property
    def unlimited(self) -> bool:
        return self.max_hours <= 0

    @property
    def limit_seconds(self) -> Optional[float]:
        return None if self.unlimited else self.max_hours * 3600

    def elapsed(self) -> float:
        return self._clock() - self._started

    def remaining(self) -> Optional[float]:
        if self.unlimited:
            return None
        return max(0.0, self.limit_seconds - self.elapsed())

    def exhausted(self) -> bool:
        """True once the elapsed time has reached the limit."""
        if self.unlimited:
            return False
        return self.elapsed() >= self.limit_seconds
