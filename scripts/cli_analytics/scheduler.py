"""
Flush decision for buffered events.

Evaluated synchronously on demand; there is no background timer.
"""

from datetime import timedelta
from enum import Enum


class FlushDecision(Enum):
    """Outcome of a conditional flush check."""
    FLUSH_SIZE = "flush_size"
    FLUSH_AGE = "flush_age"
    CLOSE = "close"

    @property
    def should_flush(self) -> bool:
        return self is not FlushDecision.CLOSE


def decide(
    size: int,
    age: timedelta,
    above_size: int,
    above_duration: timedelta
) -> FlushDecision:
    """
    Decide whether buffered events should be flushed now.

    Size is checked first, so a burst of events flushes immediately even
    right after a previous flush.

    Args:
        size: Number of buffered events
        age: Time since the last flush
        above_size: Flush when at least this many events are buffered
        above_duration: Flush when the last flush is at least this old

    Returns:
        FlushDecision
    """
    if size >= above_size:
        return FlushDecision.FLUSH_SIZE
    if age >= above_duration:
        return FlushDecision.FLUSH_AGE
    return FlushDecision.CLOSE
