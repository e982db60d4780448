import json
from datetime import UTC, datetime

import pytest

from orderq.adapters.storage.memory import InMemoryStorage
from orderq.adapters.table.document import DocumentOrderTable
from orderq.core.orders import OrderHandler, decode_order
from orderq.core.sink import PersistenceSink
from orderq.domain.errors import DecodeError, WriteError
from orderq.domain.orders import OrderRecord, OrderStatus

# ---------------------------------------------------------------------------
# OrderRecord
# ---------------------------------------------------------------------------


def test_order_record_from_camel_case(order_body: bytes):
    record = OrderRecord.model_validate_json(order_body)
    assert record.order_id == "O1234"
    assert record.user_id == "U456"
    assert record.item_name == "Laptop"
    assert record.quantity == 1
    assert record.status == OrderStatus.NEW
    assert record.timestamp == datetime(2025, 5, 5, 15, 0, tzinfo=UTC)


def test_order_record_accepts_snake_case_names():
    record = OrderRecord(
        order_id="O1",
        user_id="U1",
        item_name="Desk",
        quantity=2,
        status="shipped",
        timestamp="2025-05-05T15:00:00Z",
    )
    assert record.status == OrderStatus.SHIPPED


def test_order_status_is_case_insensitive(order_body: bytes):
    payload = json.loads(order_body) | {"status": "SHIPPED"}
    assert OrderRecord.model_validate(payload).status == OrderStatus.SHIPPED


def test_to_row_uses_table_keys(order_body: bytes):
    row = OrderRecord.model_validate_json(order_body).to_row()
    assert row == {
        "orderId": "O1234",
        "userId": "U456",
        "itemName": "Laptop",
        "quantity": 1,
        "status": "new",
        "timestamp": "2025-05-05T15:00:00Z",
    }


# ---------------------------------------------------------------------------
# decode_order
# ---------------------------------------------------------------------------


def test_decode_raw_order(order_body: bytes):
    assert decode_order(order_body).order_id == "O1234"


def test_decode_notification_envelope(order_body: bytes):
    envelope = {
        "Type": "Notification",
        "MessageId": "c0ffee",
        "TopicArn": "arn:aws:sns:eu-west-1:123456789012:orders",
        "Message": order_body.decode(),
    }
    record = decode_order(json.dumps(envelope).encode())
    assert record == decode_order(order_body)


def test_decode_envelope_without_message_string():
    body = json.dumps({"Type": "Notification", "Message": {"orderId": "O1"}}).encode()
    with pytest.raises(DecodeError, match="Message string"):
        decode_order(body)


@pytest.mark.parametrize(
    "body",
    [b"not json", b"\xc3\x28", b"", b'{"orderId": '],
)
def test_decode_rejects_malformed_json(body: bytes):
    with pytest.raises(DecodeError, match="not valid JSON"):
        decode_order(body)


@pytest.mark.parametrize("body", [b"[]", b'"O1234"', b"42", b"null"])
def test_decode_rejects_non_object_payload(body: bytes):
    with pytest.raises(DecodeError, match="JSON object"):
        decode_order(body)


def test_decode_reports_missing_field(order_body: bytes):
    payload = json.loads(order_body)
    del payload["userId"]
    with pytest.raises(DecodeError, match="userId"):
        decode_order(json.dumps(payload).encode())


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("quantity", 0),
        ("quantity", -1),
        ("quantity", "many"),
        ("quantity", 1.5),
        ("quantity", "2"),
        ("quantity", True),
        ("status", "lost"),
        ("timestamp", "yesterday"),
        ("timestamp", 1700000000),
        ("orderId", ""),
    ],
)
def test_decode_rejects_invalid_values(order_body: bytes, field: str, value: object):
    payload = json.loads(order_body) | {field: value}
    with pytest.raises(DecodeError, match=field):
        decode_order(json.dumps(payload).encode())


def test_decode_accepts_integral_float_quantity(order_body: bytes):
    payload = json.loads(order_body) | {"quantity": 2.0}
    assert decode_order(json.dumps(payload).encode()).quantity == 2


# ---------------------------------------------------------------------------
# PersistenceSink
# ---------------------------------------------------------------------------


async def test_upsert_then_get(sink: PersistenceSink, order_body: bytes):
    record = decode_order(order_body)
    await sink.upsert(record)
    assert await sink.get("O1234") == record


async def test_get_missing_returns_none(sink: PersistenceSink):
    assert await sink.get("missing") is None


async def test_upsert_is_idempotent(order_body: bytes):
    storage = InMemoryStorage()
    sink = PersistenceSink(DocumentOrderTable(storage))
    record = decode_order(order_body)

    await sink.upsert(record)
    await sink.upsert(record)

    assert storage.writes == 1
    assert await sink.get("O1234") == record


async def test_upsert_replaces_existing_row(sink: PersistenceSink, order_body: bytes):
    record = decode_order(order_body)
    await sink.upsert(record)
    await sink.upsert(record.model_copy(update={"status": OrderStatus.SHIPPED}))
    assert (await sink.get("O1234")).status == OrderStatus.SHIPPED


async def test_upsert_rejects_unvalidated_record(sink: PersistenceSink, order_body: bytes):
    record = decode_order(order_body).model_copy(update={"quantity": -3})
    with pytest.raises(WriteError, match="quantity"):
        await sink.upsert(record)
    assert await sink.get("O1234") is None


async def test_table_failure_becomes_write_error(order_body: bytes):
    class _DownTable:
        async def put(self, record: OrderRecord) -> None:
            raise ConnectionError("table unavailable")

        async def get(self, order_id: str) -> OrderRecord | None:
            return None

    sink = PersistenceSink(_DownTable())
    with pytest.raises(WriteError, match="table unavailable"):
        await sink.upsert(decode_order(order_body))


# ---------------------------------------------------------------------------
# OrderHandler
# ---------------------------------------------------------------------------


async def test_handler_stores_order(sink: PersistenceSink, order_body: bytes):
    handler = OrderHandler(sink)
    await handler(decode_order(order_body))
    assert (await sink.get("O1234")).item_name == "Laptop"
