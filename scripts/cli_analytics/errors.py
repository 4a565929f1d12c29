"""
Exceptions raised by the analytics tracker.

Filesystem failures surface as the builtin OSError subclasses; these cover
the conditions specific to the buffered event log and the remote collector.
"""


class AnalyticsError(Exception):
    """Base class for analytics errors."""


class EventDecodeError(AnalyticsError, ValueError):
    """
    A line of the event log could not be decoded.

    ``partial`` holds the events decoded before the bad line, in file order.
    """

    def __init__(self, path, line_num: int, reason: str, partial=None):
        self.path = path
        self.line_num = line_num
        self.reason = reason
        self.partial = list(partial or [])
        super().__init__(f"Malformed event at {path}:{line_num}: {reason}")


class TransmissionError(AnalyticsError):
    """The remote collector rejected or failed to deliver a batch."""
