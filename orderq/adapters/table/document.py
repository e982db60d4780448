"""
DocumentOrderTable — order rows kept in a single CAS document.

Runs on any DocumentStoragePort (memory, local file, S3), which makes it the
default table for development and tests. Rows are stored in table form
(camelCase keys) under their order id:

    {"rows": {"O1234": {"orderId": "O1234", "userId": "U456", ...}}, "version": 1}

Writing a row identical to the stored one is a no-op: no CAS write happens.
"""
from __future__ import annotations

import dataclasses
from typing import Any

from pydantic import BaseModel, ConfigDict

from orderq.core import cas
from orderq.domain.errors import StorageError
from orderq.domain.orders import OrderRecord
from orderq.ports.storage import DocumentStoragePort


class OrderTableState(BaseModel):
    model_config = ConfigDict(frozen=True)

    rows: dict[str, dict[str, Any]] = {}
    version: int = 0

    def with_row(self, order_id: str, row: dict[str, Any]) -> "OrderTableState":
        if self.rows.get(order_id) == row:
            return self
        return self.model_copy(
            update={"rows": {**self.rows, order_id: row}, "version": self.version + 1}
        )


@dataclasses.dataclass
class DocumentOrderTable:
    storage: DocumentStoragePort
    max_retries: int = 10

    async def put(self, record: OrderRecord) -> None:
        row = record.to_row()
        try:
            await cas.mutate(
                self.storage,
                OrderTableState,
                lambda state: state.with_row(record.order_id, row),
                max_retries=self.max_retries,
            )
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"put of order {record.order_id!r} failed", exc) from exc

    async def get(self, order_id: str) -> OrderRecord | None:
        state = await cas.read_document(self.storage, OrderTableState)
        row = state.rows.get(order_id)
        return None if row is None else OrderRecord.model_validate(row)

    async def scan(self) -> list[OrderRecord]:
        """Every stored record, in insertion order."""
        state = await cas.read_document(self.storage, OrderTableState)
        return [OrderRecord.model_validate(row) for row in state.rows.values()]
