"""
Buffered analytics tracker for command-line tools.

Events are appended to a log on disk so that tracking never waits on the
network. Call flush() when desired to send them to the collector, for
example after a number of events have been buffered (see size()) or after
some time has passed (see last_flush_duration()); conditional_flush() does
both checks. A flush introduces noticeable latency, so call it sparingly.

Trackers are not thread-safe, and nothing guards a state directory shared
by concurrent processes.
"""

import time
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from . import gate, identity, scheduler, state
from .client import Record
from .config import Config
from .event_log import EventLog
from .schema import Event
from .scheduler import FlushDecision


class TrackerState(Enum):
    """Initialization outcome of a tracker."""
    DISABLED = "disabled"
    INERT = "inert"
    ACTIVE = "active"


class Tracker:
    """
    Tracker owning the event log handle of one state directory.

    Construction never fails because of the environment: if the state
    directory cannot be prepared the tracker is INERT and track() does
    nothing; if the user opted out it is DISABLED.
    """

    def __init__(self, config: Config):
        """
        Initialize tracker:

        - ~/<dir>
        - ~/<dir>/id
        - ~/<dir>/events

        Args:
            config: Tracker configuration
        """
        self.config = config
        self.log = config.log
        self.root = None
        self.user_id = ""
        self.state = TrackerState.INERT
        self._events: Optional[EventLog] = None
        self._log_expected = False

        self._init()

    def _init(self):
        root = state.resolve(self.config.dir, self.log)
        if root is None:
            return

        try:
            state.ensure(root)
        except OSError as e:
            self.log.debug("error creating %s: %s", root, e)
            return
        self.root = root

        try:
            enabled = gate.is_enabled(root)
        except OSError as e:
            self.log.debug("error checking opt-out: %s", e)
            return

        if not enabled:
            self.log.debug("tracking disabled")
            self.state = TrackerState.DISABLED
            return

        self.user_id = identity.load_or_create(root, self.log)

        events = EventLog(root, self.log)
        if not events.open():
            return

        self._events = events
        self.state = TrackerState.ACTIVE
        self._log_expected = True

    @property
    def active(self) -> bool:
        return self.state is TrackerState.ACTIVE

    def track(self, name: str, properties: Optional[Dict[str, Any]] = None):
        """
        Track event ``name`` with optional ``properties``.

        No-op unless the tracker is active and its log is open.
        """
        if self._events is None or not self._events.is_open:
            return

        self._events.append(Event(name=name, properties=properties))

    def events(self) -> List[Event]:
        """
        Read the buffered events from disk.

        A log that was never created here, or was removed by a flush, reads
        as empty.

        Raises:
            FileNotFoundError: If the open event log has gone missing
            EventDecodeError: If the event log is corrupt
        """
        if self.root is None:
            return []
        try:
            return EventLog(self.root, self.log).read_all()
        except FileNotFoundError:
            if self._log_expected:
                raise
            return []

    def size(self) -> int:
        """Number of buffered events. Fails exactly as events() does."""
        return len(self.events())

    def last_flush(self) -> datetime:
        """
        Get the last flush time.

        Raises:
            FileNotFoundError: If no flush has been recorded
        """
        if self.root is None:
            raise FileNotFoundError("state directory unavailable")
        return identity.last_flush(self.root)

    def last_flush_duration(self) -> timedelta:
        """Time since the last flush; very large if never flushed."""
        if self.root is None:
            return datetime.now(timezone.utc) - identity.EPOCH
        return identity.last_flush_age(self.root)

    def conditional_flush(self, above_size: int, above_duration: timedelta) -> FlushDecision:
        """
        Flush if at least ``above_size`` events are buffered or the last
        flush is at least ``above_duration`` old, otherwise close().

        Returns:
            The decision that was carried out
        """
        if not self.active:
            self.close()
            return FlushDecision.CLOSE

        age = self.last_flush_duration()
        size = self.size()

        decision = scheduler.decide(size, age, above_size, above_duration)
        self.log.debug(
            "conditional flush: age=%s size=%d above_size=%d above_duration=%s decision=%s",
            age, size, above_size, above_duration, decision.value
        )

        if decision.should_flush:
            self.flush()
        else:
            self.close()

        return decision

    def flush(self):
        """
        Send buffered events to the collector, then remove them from disk.

        The marker is touched and the log deleted only after the collector
        accepted the batch; on failure the log is kept for the next flush.
        """
        self.close()

        if not self.active:
            self.log.debug("flush skipped: tracker %s", self.state.value)
            return

        if not self._log_expected:
            self.log.debug("flush skipped: log already flushed")
            return

        events = self._events.read_all()
        self.log.debug("flush: %d events", len(events))
        start = time.monotonic()

        try:
            if events:
                client = self.config.client_factory(self.config.write_key)
                try:
                    client.submit_batch([
                        Record(name=e.name, user_id=self.user_id, properties=e.properties)
                        for e in events
                    ])
                    client.finalize()
                except Exception:
                    client.discard()
                    raise

            identity.touch(self.root, self.log)
            self._events.clear()
            self._log_expected = False
        except Exception as e:
            self.log.debug("flush failed after %.3fs: %s", time.monotonic() - start, e)
            raise

        self.log.debug("flush completed in %.3fs", time.monotonic() - start)

    def close(self):
        """Close the underlying file handle. Safe to call repeatedly."""
        self.log.debug("close")
        if self._events is not None:
            self._events.close()

    def enabled(self) -> bool:
        """Whether tracking is enabled for this state directory."""
        if self.root is None:
            return False
        return gate.is_enabled(self.root)

    def enable(self):
        """
        Remove the opt-out marker. Takes effect for new trackers.

        Raises:
            FileNotFoundError: If tracking was not disabled
        """
        if self.root is not None:
            gate.enable(self.root)

    def disable(self):
        """Create the opt-out marker. Takes effect for new trackers."""
        if self.root is not None:
            gate.disable(self.root)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

