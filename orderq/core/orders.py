"""
Order handler — the single-purpose consumer of the order queue.

Each queue record carries one order, either as raw JSON:

    {"orderId": "O1234", "userId": "U456", "itemName": "Laptop",
     "quantity": 1, "status": "new", "timestamp": "2025-05-05T15:00:00Z"}

or wrapped in the notification envelope a pub/sub topic adds when it fans
out into the queue (raw message delivery disabled):

    {"Type": "Notification", "MessageId": "...", "TopicArn": "...",
     "Message": "{\"orderId\": \"O1234\", ...}"}

decode_order turns either form into an OrderRecord; OrderHandler stores it
through the persistence sink and logs the outcome.
"""
from __future__ import annotations

import dataclasses
import json
from typing import Any

import structlog
from pydantic import ValidationError

from orderq.core.sink import PersistenceSink
from orderq.domain.errors import DecodeError
from orderq.domain.orders import OrderRecord

logger = structlog.get_logger(__name__)


def decode_order(body: bytes) -> OrderRecord:
    """Parse a queue record body into an OrderRecord. Raises DecodeError."""
    payload = _unwrap(_load_json(body))
    if not isinstance(payload, dict):
        raise DecodeError(f"order payload must be a JSON object, got {type(payload).__name__}")
    try:
        return OrderRecord.model_validate(payload)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(map(str, err['loc'])) or '<root>'}: {err['msg']}"
            for err in exc.errors()
        )
        raise DecodeError(f"invalid order payload: {problems}") from exc


def _load_json(data: bytes | str) -> Any:
    try:
        return json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError(f"body is not valid JSON: {exc}") from exc


def _unwrap(payload: Any) -> Any:
    """Return the inner message of a notification envelope, or ``payload`` itself."""
    if isinstance(payload, dict) and payload.get("Type") == "Notification":
        inner = payload.get("Message")
        if not isinstance(inner, str):
            raise DecodeError("notification envelope has no Message string")
        return _load_json(inner)
    return payload


@dataclasses.dataclass
class OrderHandler:
    """Async handler: store a decoded order. Raises WriteError on failure."""

    sink: PersistenceSink

    async def __call__(self, order: OrderRecord) -> None:
        await self.sink.upsert(order)
        logger.info(
            "order_stored",
            order_id=order.order_id,
            user_id=order.user_id,
            status=order.status.value,
        )
