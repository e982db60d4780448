"""
OrderTablePort — keyed table the persistence sink writes order records to.

``put`` has replace semantics keyed by ``order_id``: writing the same record
twice leaves the table exactly as after the first write.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from orderq.domain.orders import OrderRecord


@runtime_checkable
class OrderTablePort(Protocol):
    """
    Built-in adapters:
      - DocumentOrderTable  — rows in a CAS document on any DocumentStoragePort
      - DynamoDBOrderTable  — DynamoDB PutItem / GetItem via aioboto3
    """

    async def put(self, record: OrderRecord) -> None:
        """Insert or replace the row for ``record.order_id``. Raises StorageError."""
        ...

    async def get(self, order_id: str) -> OrderRecord | None:
        """Return the stored record, or None."""
        ...
