"""
Opt-out gate.

Tracking is enabled unless a ``disable`` marker exists in the state
directory.
"""

from pathlib import Path

from .state import StateDirectory


def is_enabled(root: Path) -> bool:
    """
    Check whether tracking is enabled.

    Args:
        root: State directory

    Returns:
        True if no opt-out marker exists

    Raises:
        OSError: Any stat failure other than a missing marker
    """
    try:
        StateDirectory(root).disable_path.stat()
    except FileNotFoundError:
        return True
    return False


def disable(root: Path):
    """Create the opt-out marker (idempotent)."""
    StateDirectory(root).disable_path.touch(mode=0o644, exist_ok=True)


def enable(root: Path):
    """
    Remove the opt-out marker.

    Raises:
        FileNotFoundError: If tracking was not disabled
    """
    StateDirectory(root).disable_path.unlink()
