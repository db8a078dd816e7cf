"""
Wall-clock budget shared by every stage of one publish job
"""
import time


class Deadline:
    """
    Countdown derived from the invocation's time budget.

    All I/O timeouts and retry sleeps are bounded by :meth:`remaining`, so
    nothing the job does can outlive the budget it was given.

    Args:
        seconds: Total budget in seconds, starting now
        clock: Monotonic clock (injectable for tests)
    """

    def __init__(self, seconds, clock=time.monotonic):
        self._clock = clock
        self.budget = float(seconds)
        self._expires_at = clock() + self.budget

    @classmethod
    def from_lambda_context(cls, context, fallback_seconds):
        """Build a deadline from a Lambda context's remaining time."""
        getter = getattr(context, "get_remaining_time_in_millis", None)
        if getter is None:
            return cls(fallback_seconds)
        return cls(getter() / 1000.0)

    def remaining(self, reserve=0.0):
        """Seconds left before the deadline, less ``reserve``; never negative."""
        return max(0.0, self._expires_at - reserve - self._clock())

    def expired(self, reserve=0.0):
        return self._clock() >= self._expires_at - reserve

    def elapsed(self):
        return self.budget - (self._expires_at - self._clock())

    def timeout(self, cap, floor=1.0):
        """Per-call timeout: the smaller of ``cap`` and what is left."""
        return max(floor, min(float(cap), self.remaining()))

    def __repr__(self):
        return f"Deadline(remaining={self.remaining():.1f}s of {self.budget:.1f}s)"
