"""
orderq — at-least-once order queue with visibility timeouts and dead-lettering.

Orders published to the queue are consumed by workers that decode each
record, write the order to a keyed table, and acknowledge the message. A
message whose processing fails (or times out) is redelivered once its
visibility window expires; after max_receives failed deliveries it is moved
to a dead-letter sink instead. Nothing is silently dropped: every message
ends up in the table, possibly more than once (upserts are idempotent), or
in the dead-letter sink.

The queue state lives in a single JSON document. Every state transition is a
compare-and-set (CAS) write — read the document, mutate in memory, write it
back with an If-Match guard — so concurrent workers never claim the same
message while its visibility window is open.

Quick start
-----------
    import asyncio
    from datetime import timedelta
    from orderq import (
        ConsumerWorker, DeadLetterSink, DocumentOrderTable, InMemoryStorage,
        OrderHandler, PersistenceSink, QueueStore, decode_order,
    )

    async def main():
        store = QueueStore(InMemoryStorage(), DeadLetterSink(InMemoryStorage()))
        sink = PersistenceSink(DocumentOrderTable(InMemoryStorage()))

        await store.enqueue(b'{"orderId": "O1234", "userId": "U456", '
                            b'"itemName": "Laptop", "quantity": 1, '
                            b'"status": "new", "timestamp": "2025-05-05T15:00:00Z"}')

        worker = ConsumerWorker(store, decode_order)
        await worker.run(1, timedelta(seconds=30), OrderHandler(sink), until_empty=True)
        print(await sink.get("O1234"))

    asyncio.run(main())

Storage adapters
----------------
Built-in (no extra deps):
  - InMemoryStorage         — for tests and single-process use
  - LocalFileSystemStorage  — POSIX single machine (flock + atomic rename)

Optional (pip install "orderq[aws]"):
  - S3Storage               — S3 conditional writes
  - DynamoDBOrderTable      — order table in DynamoDB

Architecture
------------
Ports & Adapters:
  domain/   — value types (Message, QueueState, OrderRecord, errors)
  ports/    — Protocol interfaces (DocumentStoragePort, OrderTablePort)
  core/     — queue store, delivery tracker, sinks, worker, order handler
  adapters/ — concrete storage and table implementations
"""
from __future__ import annotations

from orderq.adapters.storage.filesystem import LocalFileSystemStorage
from orderq.adapters.storage.memory import InMemoryStorage
from orderq.adapters.table.document import DocumentOrderTable
from orderq.core.dead_letter import DeadLetterSink
from orderq.core.orders import OrderHandler, decode_order
from orderq.core.sink import PersistenceSink
from orderq.core.store import QueueStore, SweepResult
from orderq.core.tracker import Decision, decide
from orderq.core.visibility import VisibilityExtender
from orderq.core.worker import ConsumerWorker, CycleResult
from orderq.domain.errors import (
    CASConflictError,
    DecodeError,
    EscalationError,
    MessageNotFoundError,
    OrderQError,
    ProcessingError,
    StorageError,
    WriteError,
)
from orderq.domain.models import (
    DeadLetterEntry,
    Message,
    MessageStatus,
    QueueState,
)
from orderq.domain.orders import OrderRecord, OrderStatus
from orderq.ports.storage import DocumentStoragePort
from orderq.ports.table import OrderTablePort

__all__ = [
    # Domain models
    "Message",
    "MessageStatus",
    "QueueState",
    "DeadLetterEntry",
    "OrderRecord",
    "OrderStatus",
    # Errors
    "OrderQError",
    "CASConflictError",
    "MessageNotFoundError",
    "StorageError",
    "ProcessingError",
    "DecodeError",
    "WriteError",
    "EscalationError",
    # Ports (for typing custom adapters)
    "DocumentStoragePort",
    "OrderTablePort",
    # Queue and delivery
    "QueueStore",
    "SweepResult",
    "Decision",
    "decide",
    "DeadLetterSink",
    "ConsumerWorker",
    "CycleResult",
    "VisibilityExtender",
    # Persistence
    "PersistenceSink",
    "OrderHandler",
    "decode_order",
    # Built-in adapters
    "InMemoryStorage",
    "LocalFileSystemStorage",
    "DocumentOrderTable",
]
