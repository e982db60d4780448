"""
PersistenceSink — idempotent upsert of order records into a keyed table.

Delivery is at-least-once, so the same order can arrive more than once (for
example when an acknowledgment lands after the visibility window expired and
the message was redelivered). The table port has replace semantics keyed by
order id, so repeating a write leaves the same stored row.

Every failure surfaces as WriteError, a ProcessingError: the worker leaves
the message for redelivery. Transient (table unavailable) and permanent
(malformed record) failures are not told apart; both consume a delivery
attempt.
"""
from __future__ import annotations

import dataclasses

import structlog
from pydantic import ValidationError

from orderq.domain.errors import WriteError
from orderq.domain.orders import OrderRecord
from orderq.ports.table import OrderTablePort

logger = structlog.get_logger(__name__)


@dataclasses.dataclass
class PersistenceSink:
    table: OrderTablePort

    async def upsert(self, record: OrderRecord) -> None:
        """Write ``record`` keyed by its order id. Raises WriteError."""
        checked = _revalidate(record)
        try:
            await self.table.put(checked)
        except Exception as exc:
            raise WriteError(f"failed to store order {checked.order_id!r}: {exc}") from exc
        logger.debug("order_upserted", order_id=checked.order_id)

    async def get(self, order_id: str) -> OrderRecord | None:
        return await self.table.get(order_id)


def _revalidate(record: OrderRecord) -> OrderRecord:
    """
    Re-run validation on ``record``.

    Records built with model_construct (or mutated through __dict__) skip
    validation; the sink refuses to store those when they are malformed.
    """
    try:
        return OrderRecord.model_validate(dict(record.__dict__))
    except ValidationError as exc:
        fields = ", ".join(".".join(map(str, err["loc"])) for err in exc.errors())
        raise WriteError(f"malformed order record ({fields})") from exc
