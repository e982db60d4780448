"""
Delivery tracker — what happens to a message whose delivery ended without an
acknowledgment.

This is the piece a managed queue (SQS redrive policy) normally owns:

  visibility window expires, or the consumer reports failure
      → receive_count += 1
      → redeliver (available again, visible immediately)
        or dead-letter (the next delivery would exceed max_receives)

Everything here is a pure function of the message record and the current
time; the queue store applies it inside its CAS mutations.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum

from orderq.domain.models import Message, MessageStatus, QueueState


class Decision(str, Enum):
    REDELIVER = "redeliver"
    DEAD_LETTER = "dead_letter"


def decide(receive_count: int, max_receives: int) -> Decision:
    """
    Choose the fate of a message after ``receive_count`` failed deliveries.

    With max_receives=3 the message is delivered three times; after the
    third failure it is dead-lettered with receive_count == 3.
    """
    if receive_count + 1 > max_receives:
        return Decision.DEAD_LETTER
    return Decision.REDELIVER


def release(message: Message, now: datetime, error: str | None = None) -> Message:
    """
    Record a failed delivery and apply the decision.

    ``error`` replaces last_error when given; otherwise the last error the
    consumer reported (if any) is kept.
    """
    receive_count = message.receive_count + 1
    match decide(receive_count, message.max_receives):
        case Decision.REDELIVER:
            status = MessageStatus.AVAILABLE
        case Decision.DEAD_LETTER:
            status = MessageStatus.DEAD_LETTERED
    return message.model_copy(
        update={
            "status": status,
            "receive_count": receive_count,
            "visible_at": now,
            "last_error": error if error is not None else message.last_error,
        }
    )


def sweep_expired(state: QueueState, now: datetime) -> tuple[QueueState, list[Message]]:
    """
    Release every in-flight message whose visibility window has ended.

    Returns the new state and the released messages. State is returned
    unchanged (same object) when nothing expired.
    """
    released = [
        release(m, now, "visibility timeout expired" if m.last_error is None else None)
        for m in state.messages
        if m.is_expired(now)
    ]
    return state.with_messages_replaced(released), released
