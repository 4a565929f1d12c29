"""
Event schema for the on-disk log.

Each event is stored as a single JSON object per line:

    {"event": "Something", "properties": {"other": "stuff"}}
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import EventDecodeError


@dataclass(frozen=True)
class Event:
    """A named usage event with an open-ended property map."""
    name: str
    properties: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the on-disk dictionary form."""
        return {"event": self.name, "properties": self.properties}

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path=None, line_num: int = 0) -> "Event":
        """
        Build an event from its on-disk dictionary form.

        Args:
            data: Decoded JSON object
            path: Log path, used in error messages
            line_num: Line number, used in error messages

        Returns:
            Event instance

        Raises:
            EventDecodeError: If the object does not look like an event
        """
        if not isinstance(data, dict):
            raise EventDecodeError(path, line_num, "expected a JSON object")

        name = data.get("event")
        if not isinstance(name, str):
            raise EventDecodeError(path, line_num, "missing event name")

        properties = data.get("properties")
        if properties is not None and not isinstance(properties, dict):
            raise EventDecodeError(path, line_num, "properties must be an object")

        return cls(name=name, properties=properties)
