"""
QueueStore — at-least-once mailbox with visibility timeouts and dead-lettering.

Every operation is one CAS cycle on the queue document:
  1. read current state + etag from storage
  2. mutate state in memory (pure function)
  3. write back with if_match=etag, retrying on CASConflictError

The available → in_flight transition for a message therefore happens in
exactly one successful write. A poller that loses the race re-reads and finds
the message already in flight, so no two consumers hold the same message
inside its visibility window.

Expiry is checked lazily: each poll first hands overdue in-flight messages to
the delivery tracker, in the same write that claims new ones. Messages the
tracker dead-letters are then deposited in the DeadLetterSink and removed
from the queue document. If the deposit fails they stay in the document as
dead_lettered and the deposit is retried on the next poll or sweep.
"""
from __future__ import annotations

import asyncio
import dataclasses
from datetime import UTC, datetime, timedelta
from typing import Callable, NamedTuple

import structlog

from orderq.core import cas, tracker
from orderq.core.dead_letter import DeadLetterSink
from orderq.domain.errors import EscalationError, MessageNotFoundError
from orderq.domain.models import (
    DEFAULT_MAX_RECEIVES,
    Message,
    MessageStatus,
    QueueState,
)
from orderq.ports.storage import DocumentStoragePort

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SweepResult(NamedTuple):
    redelivered: int
    dead_lettered: int


@dataclasses.dataclass
class QueueStore:
    """
    Parameters
    ----------
    storage       : document storage holding the queue state
    dead_letters  : sink receiving messages that exhaust max_receives
    max_receives  : default delivery budget for new messages
    max_retries   : CAS retries per operation
    poll_interval : pause between polls while long-polling
    clock         : source of "now" for visibility decisions
    """

    storage: DocumentStoragePort
    dead_letters: DeadLetterSink
    max_receives: int = DEFAULT_MAX_RECEIVES
    max_retries: int = 10
    poll_interval: timedelta = timedelta(milliseconds=200)
    clock: Callable[[], datetime] = _utcnow

    # ------------------------------------------------------------------ #
    # Producer side                                                        #
    # ------------------------------------------------------------------ #

    async def enqueue(
        self,
        body: bytes,
        *,
        delay: timedelta = timedelta(0),
        max_receives: int | None = None,
    ) -> str:
        """Add a message. Returns its id."""
        message = Message.new(
            body,
            self.clock(),
            max_receives=self.max_receives if max_receives is None else max_receives,
            delay=delay,
        )
        await self._mutate(lambda state: state.with_message_added(message))
        logger.info("message_enqueued", message_id=message.id, size=len(body))
        return message.id

    # ------------------------------------------------------------------ #
    # Consumer side                                                        #
    # ------------------------------------------------------------------ #

    async def poll(
        self,
        batch_size: int = 1,
        visibility_timeout: timedelta = timedelta(seconds=30),
        *,
        wait_time: timedelta = timedelta(0),
    ) -> list[Message]:
        """
        Claim up to ``batch_size`` deliverable messages and mark them in flight.

        Waits up to ``wait_time`` for messages to become available. Returns
        an empty list when none did.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_time.total_seconds()
        while True:
            claimed = await self._claim(batch_size, visibility_timeout)
            if claimed or loop.time() >= deadline:
                return claimed
            await asyncio.sleep(
                min(self.poll_interval.total_seconds(), max(deadline - loop.time(), 0))
            )

    async def delete(self, message_id: str) -> None:
        """Acknowledge a message: remove it permanently. No-op if absent."""
        await self._mutate(lambda state: state.without_message(message_id))

    async def extend_visibility(self, message_id: str, timeout: timedelta) -> None:
        """
        Push the visibility window of an in-flight message to now + timeout.

        Raises MessageNotFoundError when the message is gone or not in flight.
        """

        def _fn(state: QueueState) -> QueueState:
            message = state.find(message_id)
            if message is None:
                raise MessageNotFoundError(message_id)
            if message.status != MessageStatus.IN_FLIGHT:
                raise MessageNotFoundError(message_id, "is not in flight")
            return state.with_message_replaced(
                message.with_visibility(self.clock() + timeout)
            )

        await self._mutate(_fn)

    async def report_failure(
        self,
        message_id: str,
        error: str,
        *,
        release: bool = False,
    ) -> None:
        """
        Record a failed delivery of an in-flight message.

        By default only last_error is stored and the message stays in flight
        until its window expires. With ``release=True`` the delivery tracker
        runs now. No-op when the message is not in flight.
        """

        def _fn(state: QueueState) -> QueueState:
            message = state.find(message_id)
            if message is None or message.status != MessageStatus.IN_FLIGHT:
                return state
            if release:
                updated = tracker.release(message, self.clock(), error)
            else:
                updated = message.with_error(error)
            return state.with_message_replaced(updated)

        new_state = await self._mutate(_fn)
        if release and new_state.dead_lettered():
            await self._flush_dead_letters(raise_errors=False)

    async def sweep(self) -> SweepResult:
        """
        Release expired in-flight messages and flush pending dead letters.

        Raises EscalationError when a dead-letter deposit fails.
        """
        released: list[Message] = []

        def _fn(state: QueueState) -> QueueState:
            nonlocal released
            new_state, released = tracker.sweep_expired(state, self.clock())
            return new_state

        await self._mutate(_fn)
        dead = await self._flush_dead_letters(raise_errors=True)
        redelivered = sum(1 for m in released if m.status == MessageStatus.AVAILABLE)
        return SweepResult(redelivered=redelivered, dead_lettered=dead)

    # ------------------------------------------------------------------ #
    # Operator side                                                        #
    # ------------------------------------------------------------------ #

    async def replay(self, message_id: str) -> str:
        """
        Re-enqueue the body of a dead-letter entry as a new message.

        The entry stays in the dead-letter sink. Raises MessageNotFoundError
        if there is no entry for ``message_id``.
        """
        entry = await self.dead_letters.get(message_id)
        if entry is None:
            raise MessageNotFoundError(message_id, "not found in dead-letter sink")
        new_id = await self.enqueue(entry.body)
        logger.info("dead_letter_replayed", message_id=message_id, new_message_id=new_id)
        return new_id

    async def read_state(self) -> QueueState:
        """Read-only snapshot of the current queue state."""
        return await cas.read_document(self.storage, QueueState)

    async def counts(self) -> dict[MessageStatus, int]:
        return (await self.read_state()).counts()

    # ------------------------------------------------------------------ #
    # Internal                                                            #
    # ------------------------------------------------------------------ #

    async def _claim(
        self, batch_size: int, visibility_timeout: timedelta
    ) -> list[Message]:
        claimed: list[Message] = []
        escalated = False

        def _fn(state: QueueState) -> QueueState:
            nonlocal claimed, escalated
            now = self.clock()
            state, _ = tracker.sweep_expired(state, now)
            escalated = bool(state.dead_lettered())
            claimed = [
                m.claimed(now, visibility_timeout)
                for m in state.deliverable(now)[:batch_size]
            ]
            return state.with_messages_replaced(claimed)

        await self._mutate(_fn)
        if escalated:
            await self._flush_dead_letters(raise_errors=False)
        return claimed

    async def _flush_dead_letters(self, *, raise_errors: bool) -> int:
        """
        Deposit every dead_lettered message, then drop it from the queue.

        Returns the number moved. Failed deposits are logged at critical
        level; the first one is re-raised when ``raise_errors`` is set.
        """
        state = await self.read_state()
        failures: list[EscalationError] = []
        moved = 0
        for message in state.dead_lettered():
            try:
                await self.dead_letters.deposit(message)
            except EscalationError as exc:
                logger.critical(
                    "dead_letter_escalation_failed",
                    message_id=message.id,
                    receive_count=message.receive_count,
                    error=str(exc.cause),
                )
                failures.append(exc)
                continue
            await self._mutate(_remove_dead_lettered(message.id))
            moved += 1
        if failures and raise_errors:
            raise failures[0]
        return moved

    async def _mutate(self, fn: Callable[[QueueState], QueueState]) -> QueueState:
        return await cas.mutate(self.storage, QueueState, fn, max_retries=self.max_retries)


def _remove_dead_lettered(message_id: str) -> Callable[[QueueState], QueueState]:
    def _fn(state: QueueState) -> QueueState:
        message = state.find(message_id)
        if message is None or message.status != MessageStatus.DEAD_LETTERED:
            return state
        return state.without_message(message_id)

    return _fn
