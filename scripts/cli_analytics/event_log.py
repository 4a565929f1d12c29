"""
Append-only JSONL event log.

Events are appended to ``<root>/events`` one JSON object per line and read
back in file order at flush time. The file is the single source of truth
until a flush deletes it.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional

from .errors import EventDecodeError
from .schema import Event
from .state import StateDirectory

logger = logging.getLogger(__name__)


class EventLog:
    """Append handle on the event log of a state directory."""

    def __init__(self, root: Path, log: Optional[logging.Logger] = None):
        """
        Initialize log.

        Args:
            root: State directory
            log: Logger for diagnostics
        """
        self.root = Path(root)
        self.path = StateDirectory(self.root).events_path
        self.log = log or logger
        self._file = None

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def open(self) -> bool:
        """
        Open the log for append, creating it if absent.

        Returns:
            True if the log is usable
        """
        if self._file is not None:
            return True

        try:
            self._file = open(self.path, 'a', encoding='utf-8')
        except OSError as e:
            self.log.debug("error opening events: %s", e)
            return False

        return True

    def append(self, event: Event):
        """
        Append one event as a JSON line.

        No-op if the log was never opened or has been closed.

        Args:
            event: Event to append
        """
        if self._file is None:
            return

        self._file.write(json.dumps(event.to_dict(), ensure_ascii=False, default=str) + '\n')
        self._file.flush()

    def close(self):
        """Release the file handle (idempotent)."""
        if self._file is None:
            return

        f, self._file = self._file, None
        f.close()

    def read_all(self) -> List[Event]:
        """
        Read every buffered event in file order.

        Returns:
            List of events

        Raises:
            FileNotFoundError: If the log does not exist
            EventDecodeError: If a line cannot be decoded
        """
        events = []
        with open(self.path, 'rb') as f:
            for line_num, raw in enumerate(f, 1):
                try:
                    line = raw.decode('utf-8').strip()
                except UnicodeDecodeError as e:
                    raise EventDecodeError(self.path, line_num, str(e), events) from e

                if not line:
                    continue

                try:
                    data = json.loads(line)
                except json.JSONDecodeError as e:
                    raise EventDecodeError(self.path, line_num, str(e), events) from e

                try:
                    events.append(Event.from_dict(data, self.path, line_num))
                except EventDecodeError as e:
                    e.partial = list(events)
                    raise

        return events

    def count(self) -> int:
        """Number of buffered events. Fails exactly as read_all() does."""
        return len(self.read_all())

    def clear(self):
        """Delete the backing file."""
        self.path.unlink()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
