"""
State directory resolution.

All persisted state lives under ``~/<dir>``:

- ``id``          pseudo-user identifier
- ``events``      buffered event log (JSONL)
- ``last_flush``  marker whose mtime is the last flush time
- ``disable``     opt-out marker
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

ID_FILE = "id"
EVENTS_FILE = "events"
LAST_FLUSH_FILE = "last_flush"
DISABLE_FILE = "disable"


def resolve(base_dir: str, log: Optional[logging.Logger] = None) -> Optional[Path]:
    """
    Compose the home directory with ``base_dir``.

    Args:
        base_dir: Directory name relative to the home directory
        log: Logger for diagnostics

    Returns:
        Absolute state directory path, or None if the home directory
        could not be determined
    """
    log = log or logger
    try:
        home = Path.home()
    except (RuntimeError, KeyError) as e:
        log.debug("error finding home dir: %s", e)
        return None
    return home / base_dir


def ensure(path: Path):
    """Create ``path`` if absent. An existing directory is not an error."""
    path.mkdir(mode=0o755, exist_ok=True)


@dataclass(frozen=True)
class StateDirectory:
    """Paths of the files kept in a state directory."""
    root: Path

    @property
    def id_path(self) -> Path:
        return self.root / ID_FILE

    @property
    def events_path(self) -> Path:
        return self.root / EVENTS_FILE

    @property
    def last_flush_path(self) -> Path:
        return self.root / LAST_FLUSH_FILE

    @property
    def disable_path(self) -> Path:
        return self.root / DISABLE_FILE
