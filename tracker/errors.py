"""Error taxonomy for the tracker.

Every error raised by the store, the coordinator and the forwarder derives
from TrackerError and carries the HTTP status it maps to, so the error
handler middleware can turn it into a structured response.
"""


class TrackerError(Exception):
    """Base class for tracker errors."""

    status_code: int = 500

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class StorageUnavailable(TrackerError):
    """The action store could not be opened or its schema created."""

    status_code = 503


class PersistenceError(TrackerError):
    """A single append to the action store failed."""

    status_code = 500


class QueryError(TrackerError):
    """Reading the action table failed."""

    status_code = 500


class DeserializationError(TrackerError):
    """An inbound event body could not be decoded."""

    status_code = 400


class ForwarderClosed(TrackerError):
    """The forwarder no longer accepts submissions."""

    status_code = 503
