"""
Buffered analytics for command-line tools.

Usage events are appended to a local log under ``~/<dir>`` and sent to the
collector in batches, when a size or age threshold is crossed or when
flush() is called.
"""

from .client import CollectorClient, Record, SegmentClient
from .config import AnalyticsSettings, Config
from .errors import AnalyticsError, EventDecodeError, TransmissionError
from .event_log import EventLog
from .scheduler import FlushDecision
from .schema import Event
from .tracker import Tracker, TrackerState

__all__ = [
    # Tracker
    'Tracker',
    'TrackerState',
    'Config',
    'AnalyticsSettings',
    # Storage
    'Event',
    'EventLog',
    'FlushDecision',
    # Collector
    'CollectorClient',
    'Record',
    'SegmentClient',
    # Errors
    'AnalyticsError',
    'EventDecodeError',
    'TransmissionError',
]

__version__ = '1.0.0'
