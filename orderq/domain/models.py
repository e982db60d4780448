"""
Queue domain models — backed by Pydantic v2.

Pydantic handles:
  - JSON serialization / deserialization (via codec.py)
  - bytes ↔ base64 encoding of message bodies
  - datetime parsing (ISO-8601 with timezone)

All models are frozen. State changes return new instances via
model_copy(update=...), so a CAS mutation is a pure function of the state
it read.
"""

import base64
import uuid
from collections import Counter
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from orderq.domain.errors import MessageNotFoundError

DEFAULT_MAX_RECEIVES = 3


def _decode_body(v: str | bytes) -> bytes:
    match v:
        case bytes():
            return v
        case str():
            return base64.b64decode(v)
        case _:
            raise ValueError(
                f"body must be bytes or a base64-encoded str, got {type(v).__name__}"
            )


class MessageStatus(str, Enum):
    """The partition a message currently lives in."""

    AVAILABLE = "available"
    IN_FLIGHT = "in_flight"
    DEAD_LETTERED = "dead_lettered"


class Message(BaseModel):
    """
    A single message held by the queue store.

    id            — opaque identifier assigned at enqueue time
    body          — raw payload bytes (base64 in JSON)
    status        — current partition
    receive_count — deliveries that ended without acknowledgment
    max_receives  — delivery budget before dead-lettering
    enqueued_at   — first-enqueue time
    visible_at    — end of the visibility window while in flight; earliest
                    delivery time while available
    last_error    — most recent failure reported by a consumer
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    body: bytes
    status: MessageStatus = MessageStatus.AVAILABLE
    receive_count: int = Field(default=0, ge=0)
    max_receives: int = Field(default=DEFAULT_MAX_RECEIVES, ge=1)
    enqueued_at: datetime
    visible_at: datetime
    last_error: str | None = None

    @field_validator("body", mode="before")
    @classmethod
    def _decode_body(cls, v: str | bytes) -> bytes:
        """Accept base64 strings from JSON; pass bytes through unchanged."""
        return _decode_body(v)

    @field_serializer("body")
    def _encode_body(self, v: bytes) -> str:
        return base64.b64encode(v).decode("ascii")

    @classmethod
    def new(
        cls,
        body: bytes,
        now: datetime,
        *,
        max_receives: int = DEFAULT_MAX_RECEIVES,
        delay: timedelta = timedelta(0),
    ) -> "Message":
        """Factory — fresh id, available from ``now + delay``."""
        return cls(
            body=body,
            max_receives=max_receives,
            enqueued_at=now,
            visible_at=now + delay,
        )

    def claimed(self, now: datetime, visibility_timeout: timedelta) -> "Message":
        """Return the in-flight copy handed to a consumer."""
        return self.model_copy(
            update={
                "status": MessageStatus.IN_FLIGHT,
                "visible_at": now + visibility_timeout,
            }
        )

    def with_visibility(self, visible_at: datetime) -> "Message":
        return self.model_copy(update={"visible_at": visible_at})

    def with_error(self, error: str | None) -> "Message":
        return self.model_copy(update={"last_error": error})

    def is_deliverable(self, now: datetime) -> bool:
        return self.status == MessageStatus.AVAILABLE and self.visible_at <= now

    def is_expired(self, now: datetime) -> bool:
        """True for an in-flight message whose visibility window has ended."""
        return self.status == MessageStatus.IN_FLIGHT and self.visible_at <= now


class QueueState(BaseModel):
    """
    The complete, authoritative state of the queue.

    This is exactly what lives in the queue document on storage.

    messages — every message not yet deleted or handed to the dead-letter sink
    version  — incremented on every mutation
    """

    model_config = ConfigDict(frozen=True)

    messages: tuple[Message, ...] = ()
    version: int = 0

    # ------------------------------------------------------------------ #
    # Query helpers                                                        #
    # ------------------------------------------------------------------ #

    def deliverable(self, now: datetime) -> tuple[Message, ...]:
        """Available messages whose visible_at has passed, oldest first."""
        return tuple(
            sorted(
                (m for m in self.messages if m.is_deliverable(now)),
                key=lambda m: m.enqueued_at,
            )
        )

    def partition(self, status: MessageStatus) -> tuple[Message, ...]:
        return tuple(m for m in self.messages if m.status == status)

    def in_flight(self) -> tuple[Message, ...]:
        return self.partition(MessageStatus.IN_FLIGHT)

    def dead_lettered(self) -> tuple[Message, ...]:
        return self.partition(MessageStatus.DEAD_LETTERED)

    def counts(self) -> dict[MessageStatus, int]:
        """Number of messages per partition (every partition present)."""
        tally = Counter(m.status for m in self.messages)
        return {status: tally.get(status, 0) for status in MessageStatus}

    def find(self, message_id: str) -> Message | None:
        return next((m for m in self.messages if m.id == message_id), None)

    # ------------------------------------------------------------------ #
    # Mutation helpers: each returns a new QueueState                     #
    # ------------------------------------------------------------------ #

    def with_message_added(self, message: Message) -> "QueueState":
        return self.model_copy(
            update={"messages": self.messages + (message,), "version": self.version + 1}
        )

    def with_messages_replaced(self, updated: list[Message]) -> "QueueState":
        """
        Replace every message whose id appears in ``updated``.

        Raises MessageNotFoundError if any id is absent. An empty list returns
        self unchanged.
        """
        if not updated:
            return self
        by_id = {m.id: m for m in updated}
        new_messages = tuple(by_id.pop(m.id, m) for m in self.messages)
        if by_id:
            raise MessageNotFoundError(next(iter(by_id)))
        return self.model_copy(
            update={"messages": new_messages, "version": self.version + 1}
        )

    def with_message_replaced(self, updated: Message) -> "QueueState":
        return self.with_messages_replaced([updated])

    def without_message(self, message_id: str) -> "QueueState":
        """Remove a message by id. Returns self unchanged when it is absent."""
        new_messages = tuple(m for m in self.messages if m.id != message_id)
        if len(new_messages) == len(self.messages):
            return self
        return self.model_copy(
            update={"messages": new_messages, "version": self.version + 1}
        )


class DeadLetterEntry(BaseModel):
    """A message that exhausted its delivery budget."""

    model_config = ConfigDict(frozen=True)

    message_id: str
    body: bytes
    receive_count: int
    first_seen: datetime
    last_error: str | None = None
    dead_lettered_at: datetime

    @field_validator("body", mode="before")
    @classmethod
    def _decode_body(cls, v: str | bytes) -> bytes:
        return _decode_body(v)

    @field_serializer("body")
    def _encode_body(self, v: bytes) -> str:
        return base64.b64encode(v).decode("ascii")

    @classmethod
    def from_message(cls, message: Message, now: datetime) -> "DeadLetterEntry":
        return cls(
            message_id=message.id,
            body=message.body,
            receive_count=message.receive_count,
            first_seen=message.enqueued_at,
            last_error=message.last_error,
            dead_lettered_at=now,
        )


class DeadLetterState(BaseModel):
    """The dead-letter document: entries in deposit order."""

    model_config = ConfigDict(frozen=True)

    entries: tuple[DeadLetterEntry, ...] = ()
    version: int = 0

    def find(self, message_id: str) -> DeadLetterEntry | None:
        return next((e for e in self.entries if e.message_id == message_id), None)

    def with_entry_added(self, entry: DeadLetterEntry) -> "DeadLetterState":
        return self.model_copy(
            update={"entries": self.entries + (entry,), "version": self.version + 1}
        )
