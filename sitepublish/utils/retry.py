"""
Bounded retry with exponential backoff
"""
import logging
import time
from typing import Callable, Optional, TypeVar

from .deadline import Deadline

log = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt`` (0-based), capped at ``max_delay``."""
    return min(max_delay, base_delay * (2 ** attempt))


def call_with_retry(
    func: Callable[[], T],
    retries: int,
    is_transient: Callable[[BaseException], bool],
    base_delay: float = 0.2,
    max_delay: float = 5.0,
    deadline: Optional[Deadline] = None,
    reserve: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "call",
) -> T:
    """Call ``func``, retrying transient failures.

    A failure is re-raised unchanged when it is not transient, when
    ``retries`` retries have already been made, or when the backoff sleep
    would run past the deadline.

    Args:
        func: Zero-argument callable to invoke
        retries: Maximum number of retries after the first attempt
        is_transient: Predicate deciding whether an exception is retryable
        base_delay: Delay before the first retry, doubled each time
        max_delay: Upper bound for a single delay
        deadline: Optional job deadline bounding the sleeps
        reserve: Seconds of the deadline kept back for reporting
        sleep: Sleep function (injectable for tests)
        description: Label used in debug logging

    Returns:
        Whatever ``func`` returns
    """
    attempt = 0
    while True:
        try:
            return func()
        except Exception as exc:
            if not is_transient(exc) or attempt >= retries:
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            if deadline is not None and deadline.remaining(reserve) <= delay:
                raise
            log.debug("%s failed (%s), retry %d/%d in %.2fs",
                      description, exc, attempt + 1, retries, delay)
            sleep(delay)
            attempt += 1
