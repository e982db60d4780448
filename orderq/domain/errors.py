"""
Exception hierarchy for orderq.

OrderQError
├── CASConflictError      — conditional write rejected because the etag moved
├── MessageNotFoundError  — message id absent, or not in the expected partition
├── StorageError          — underlying I/O failure (wraps original exception)
├── ProcessingError       — handler failed; the message stays for redelivery
│   ├── DecodeError       — ingress payload could not be decoded
│   └── WriteError        — persistence sink rejected or failed the write
└── EscalationError       — dead-letter deposit failed for a message
"""

from __future__ import annotations


class OrderQError(Exception):
    """Base class for all orderq exceptions."""


class CASConflictError(OrderQError):
    """
    Raised when a compare-and-set write is rejected by the storage backend.

    The caller should re-read the current document and retry. Losing a CAS
    race is how two pollers are kept from claiming the same message.
    """


class MessageNotFoundError(OrderQError):
    """Raised when a message id is not present in the current QueueState."""

    def __init__(self, message_id: str, reason: str = "not found in queue state") -> None:
        self.message_id = message_id
        super().__init__(f"Message {message_id!r} {reason}")


class StorageError(OrderQError):
    """
    Wraps an underlying I/O failure from a storage or table adapter.

    Attributes
    ----------
    cause : Exception
        The original exception from the backend.
    """

    def __init__(self, message: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"{message}: {cause}")


class ProcessingError(OrderQError):
    """
    A handler could not process a message.

    The worker never acknowledges a message whose handler raised; the
    message is redelivered once its visibility window expires.
    """


class DecodeError(ProcessingError):
    """The message body is not a valid ingress payload."""


class WriteError(ProcessingError):
    """The persistence sink could not store a record."""


class EscalationError(OrderQError):
    """
    A dead-lettered message could not be deposited in the dead-letter sink.

    Both retry and dead-lettering failed for this message, so this is the one
    failure an operator must be alerted about. The message stays in the
    queue document as dead-lettered and the deposit is retried on the next
    sweep.
    """

    def __init__(self, message_id: str, cause: Exception) -> None:
        self.message_id = message_id
        self.cause = cause
        super().__init__(f"Dead-letter deposit failed for message {message_id!r}: {cause}")
