"""Error hierarchy for the archive and its background work queue."""

from __future__ import annotations


class ArchiveError(Exception):
    """Base error raised by the archive."""

    default_message = "archive error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message if message is not None else self.default_message)


class DisconnectedError(ArchiveError):
    """Raised when sending to an actor that is no longer running."""

    default_message = "Trying to send to disconnected actor"


class ChannelError(ArchiveError):
    """Raised when sending on a channel whose receiver is gone."""

    default_message = "Sending on a disconnected channel"


class TimestampOutOfRangeError(ArchiveError):
    """Raised when a duration would have to be negative."""

    default_message = "Negative durations are not supported"


class MismatchedSpecNameError(ArchiveError):
    """Raised when the database holds data of a different chain."""

    def __init__(self, expected: str, got: str) -> None:
        self.expected = expected
        self.got = got
        super().__init__(f"Expected chain {expected} got {got}")


class PrevSpecNotFoundError(ArchiveError):
    """Raised when the runtime version preceding a spec is unknown."""

    def __init__(self, spec: int) -> None:
        self.spec = spec
        super().__init__(f"Previous Spec {spec} not found")


class TracingError(ArchiveError):
    """Base error for block execution tracing."""

    default_message = "tracing error"


class NoTraceForBlockError(TracingError):
    """Raised when no traces exist for a block."""

    def __init__(self, block_num: int) -> None:
        self.block_num = block_num
        super().__init__(f"Traces for block {block_num} not found")


class NoTraceAccessError(TracingError):
    """Raised when collected traces cannot be reached."""

    default_message = "Traces could not be accessed from shared state"


class ParentNotFoundError(TracingError):
    """Raised when a span refers to a parent that was never recorded."""

    default_message = "Parent ID for span does not exist in the tree"


class TraceTypeError(TracingError, TypeError):
    """Raised when a traced value has an unexpected type."""

    default_message = "Wrong Type"


class QueueError(Exception):
    """Base error raised by the background work queue."""

    default_message = "work queue error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message if message is not None else self.default_message)


class EnqueueError(QueueError):
    """Raised when a task cannot be put on the queue."""

    default_message = "Error enqueuing task"


class BatchInsertError(EnqueueError):
    """Raised when a batch of tasks cannot be put on the queue."""

    default_message = "Error enqueuing batch tasks"


class FetchError(QueueError):
    """Raised when a task cannot be taken from the queue."""

    default_message = "Failed fetching task"


class NoMessageError(FetchError):
    """Raised when a worker sent no response."""

    default_message = "Got no response from worker"


class FetchTimeoutError(FetchError, TimeoutError):
    """Raised when waiting for a worker took too long."""

    default_message = "Timeout reached while waiting for worker to finish"


class PerformError(QueueError):
    """Catch-all error for jobs that failed while running."""

    default_message = "job failed"