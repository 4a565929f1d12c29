"""
Pseudo-user identity and the last-flush marker.

The identifier is generated once per state directory and reused across
process invocations. The ``last_flush`` marker's mtime records when events
were last sent; it is created alongside the identifier so a fresh install
does not flush by age on its first run.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from .state import StateDirectory

logger = logging.getLogger(__name__)

MARKER_CONTENT = ":)"

EPOCH = datetime.fromtimestamp(0, timezone.utc)


def load_or_create(root: Path, log: Optional[logging.Logger] = None) -> str:
    """
    Load the identifier, creating it on first use.

    Args:
        root: State directory
        log: Logger for diagnostics

    Returns:
        Identifier string, or "" if it could not be created
    """
    log = log or logger
    state = StateDirectory(root)

    try:
        user_id = state.id_path.read_text()
        log.debug("id already created")
        return user_id
    except FileNotFoundError:
        pass
    except OSError as e:
        log.debug("error reading id: %s", e)
        return ""

    log.debug("creating id")
    user_id = str(uuid.uuid4())

    try:
        state.id_path.write_text(user_id)
    except OSError as e:
        log.debug("error saving id: %s", e)
        return user_id

    try:
        touch(root, log)
    except OSError as e:
        log.debug("error touching last flush: %s", e)

    return user_id


def touch(root: Path, log: Optional[logging.Logger] = None):
    """Update the last-flush marker to now."""
    (log or logger).debug("touch")
    StateDirectory(root).last_flush_path.write_text(MARKER_CONTENT)


def last_flush(root: Path) -> datetime:
    """
    Get the last flush time.

    Raises:
        FileNotFoundError: If no flush has been recorded
    """
    mtime = StateDirectory(root).last_flush_path.stat().st_mtime
    return datetime.fromtimestamp(mtime, timezone.utc)


def last_flush_age(root: Path, now: Optional[datetime] = None) -> timedelta:
    """
    Get the time elapsed since the last flush.

    A missing marker counts as never flushed, so the age is measured from
    the Unix epoch.

    Args:
        root: State directory
        now: Reference time (defaults to the current time)

    Returns:
        Elapsed time since the last flush
    """
    now = now or datetime.now(timezone.utc)
    try:
        flushed = last_flush(root)
    except FileNotFoundError:
        flushed = EPOCH
    return now - flushed
