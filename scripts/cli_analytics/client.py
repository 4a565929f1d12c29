"""
Remote collector clients.

The tracker needs a collector to submit a batch of records, then finalize
so everything submitted is delivered, or discard the batch if either step
fails. SegmentClient provides them on top of Segment's Python library;
any object with the same methods can be substituted through
``Config.client_factory``.
"""

import logging
import queue
import uuid
from typing import Any, Dict, List, NamedTuple, Optional, Protocol, Sequence

from segment.analytics.client import Client

from .errors import TransmissionError

logger = logging.getLogger(__name__)


class Record(NamedTuple):
    """One event as sent to the collector."""
    name: str
    user_id: str
    properties: Optional[Dict[str, Any]]


class CollectorClient(Protocol):
    """Interface the tracker requires of a remote collector."""

    def submit_batch(self, records: Sequence[Record]):
        ...

    def finalize(self):
        ...

    def discard(self):
        """Drop anything not yet delivered and release the client."""
        ...


def validate(record: Record):
    """
    Check a record before anything is queued.

    Raises:
        TransmissionError: If the record cannot be sent
    """
    if not isinstance(record.name, str) or not record.name:
        raise TransmissionError(f"Invalid event name {record.name!r}")
    if record.properties is not None and not isinstance(record.properties, dict):
        raise TransmissionError(f"Invalid properties for event {record.name!r}")


class SegmentClient:
    """
    Collector client backed by segment-analytics-python.

    Records are queued on the library's client and uploaded by its
    consumer; finalize() blocks until the queue is drained. Records
    without a user id are sent under an anonymous id.
    """

    def __init__(self, write_key: str, **options):
        """
        Initialize client.

        Args:
            write_key: Segment source write key
            **options: Extra keyword arguments for segment's Client
        """
        self.write_key = write_key
        self.errors: List[Exception] = []
        self.anonymous_id = str(uuid.uuid4())
        self._client = Client(write_key, on_error=self._on_error, **options)

    def _on_error(self, error, items):
        logger.debug("segment upload failed for %d items: %s", len(items), error)
        self.errors.append(error)

    def submit_batch(self, records: Sequence[Record]):
        """
        Queue every record for upload.

        The whole batch is validated first; if any record is invalid or
        rejected by the queue, nothing from the batch is left queued.

        Raises:
            TransmissionError: If a record is invalid or rejected
        """
        for record in records:
            validate(record)

        for record in records:
            if record.user_id:
                identity = {"user_id": record.user_id}
            else:
                identity = {"anonymous_id": self.anonymous_id}
            try:
                ok, _ = self._client.track(
                    event=record.name,
                    properties=record.properties or {},
                    **identity
                )
            except AssertionError as e:
                self.discard()
                raise TransmissionError(f"Invalid event {record.name!r}: {e}") from e

            if not ok:
                self.discard()
                raise TransmissionError(f"Event {record.name!r} dropped by a full queue")

    def finalize(self):
        """
        Deliver queued records and stop the client.

        Raises:
            TransmissionError: If any record failed to upload
        """
        self._client.flush()
        self._client.shutdown()

        if self.errors:
            raise TransmissionError(f"Upload failed: {self.errors[-1]}") from self.errors[-1]

    def discard(self):
        """Empty the upload queue and stop the consumer without sending."""
        pending = self._client.queue
        while True:
            try:
                pending.get_nowait()
            except queue.Empty:
                break
            pending.task_done()

        self._client.join()
