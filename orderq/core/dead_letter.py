"""
DeadLetterSink — durable, write-once store for messages that exhausted their
delivery budget.

Entries live in their own document (separate from the queue document) and
are never reprocessed automatically. Replay is an operator action, see
QueueStore.replay.
"""
from __future__ import annotations

import dataclasses
from datetime import UTC, datetime
from typing import Callable

import structlog

from orderq.core import cas
from orderq.domain.errors import EscalationError
from orderq.domain.models import DeadLetterEntry, DeadLetterState, Message
from orderq.ports.storage import DocumentStoragePort

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclasses.dataclass
class DeadLetterSink:
    """
    Parameters
    ----------
    storage     : document storage for the dead-letter entries
    max_retries : CAS retries per deposit
    clock       : source of the dead_lettered_at timestamp
    """

    storage: DocumentStoragePort
    max_retries: int = 10
    clock: Callable[[], datetime] = _utcnow

    async def deposit(self, message: Message) -> DeadLetterEntry:
        """
        Store ``message`` with its failure metadata.

        Write-once per message id: depositing an id that is already present
        returns the existing entry and leaves the document untouched.
        Any failure raises EscalationError.
        """
        entry = DeadLetterEntry.from_message(message, self.clock())
        stored = entry

        def _fn(state: DeadLetterState) -> DeadLetterState:
            nonlocal stored
            existing = state.find(message.id)
            if existing is not None:
                stored = existing
                return state
            stored = entry
            return state.with_entry_added(entry)

        try:
            await cas.mutate(self.storage, DeadLetterState, _fn, max_retries=self.max_retries)
        except Exception as exc:
            raise EscalationError(message.id, exc) from exc

        logger.warning(
            "message_dead_lettered",
            message_id=message.id,
            receive_count=stored.receive_count,
            last_error=stored.last_error,
        )
        return stored

    async def list(self) -> list[DeadLetterEntry]:
        """All entries in deposit order."""
        state = await cas.read_document(self.storage, DeadLetterState)
        return list(state.entries)

    async def get(self, message_id: str) -> DeadLetterEntry | None:
        state = await cas.read_document(self.storage, DeadLetterState)
        return state.find(message_id)
