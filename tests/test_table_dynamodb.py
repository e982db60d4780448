from unittest.mock import AsyncMock, MagicMock

import pytest

from orderq.adapters.table.dynamodb import DynamoDBOrderTable, from_item, to_item
from orderq.core.orders import decode_order
from orderq.domain.errors import StorageError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _AsyncCM:
    """Minimal async context manager wrapping a return value."""

    def __init__(self, value: object) -> None:
        self._value = value

    async def __aenter__(self) -> object:
        return self._value

    async def __aexit__(self, *args: object) -> None:
        pass


def _make_table() -> tuple[DynamoDBOrderTable, AsyncMock, MagicMock]:
    ddb = AsyncMock()
    session = MagicMock()
    session.client.return_value = _AsyncCM(ddb)
    table = DynamoDBOrderTable(table_name="Orders", session=session, region_name="us-east-1")
    return table, ddb, session


def _client_error(code: str) -> Exception:
    exc = Exception(f"ClientError: {code}")
    exc.response = {"Error": {"Code": code}}  # type: ignore[attr-defined]
    return exc


# ---------------------------------------------------------------------------
# Item mapping
# ---------------------------------------------------------------------------


def test_to_item_maps_attribute_types(order_body: bytes):
    item = to_item(decode_order(order_body))
    assert item == {
        "orderId": {"S": "O1234"},
        "userId": {"S": "U456"},
        "itemName": {"S": "Laptop"},
        "quantity": {"N": "1"},
        "status": {"S": "new"},
        "timestamp": {"S": "2025-05-05T15:00:00Z"},
    }


def test_from_item_restores_record(order_body: bytes):
    record = decode_order(order_body)
    assert from_item(to_item(record)) == record


# ---------------------------------------------------------------------------
# put / get
# ---------------------------------------------------------------------------


async def test_put_item(order_body: bytes):
    table, ddb, session = _make_table()

    await table.put(decode_order(order_body))

    session.client.assert_called_once_with("dynamodb", region_name="us-east-1")
    kwargs = ddb.put_item.call_args.kwargs
    assert kwargs["TableName"] == "Orders"
    assert kwargs["Item"]["orderId"] == {"S": "O1234"}


async def test_put_failure_raises_storage_error(order_body: bytes):
    table, ddb, _ = _make_table()
    ddb.put_item.side_effect = _client_error("ProvisionedThroughputExceededException")

    with pytest.raises(StorageError, match="ProvisionedThroughputExceededException"):
        await table.put(decode_order(order_body))


async def test_get_item_is_consistent_read(order_body: bytes):
    table, ddb, _ = _make_table()
    record = decode_order(order_body)
    ddb.get_item.return_value = {"Item": to_item(record)}

    assert await table.get("O1234") == record
    ddb.get_item.assert_awaited_once_with(
        TableName="Orders", Key={"orderId": {"S": "O1234"}}, ConsistentRead=True
    )


async def test_get_missing_item_returns_none():
    table, ddb, _ = _make_table()
    ddb.get_item.return_value = {}

    assert await table.get("missing") is None


async def test_get_failure_raises_storage_error():
    table, ddb, _ = _make_table()
    ddb.get_item.side_effect = _client_error("ResourceNotFoundException")

    with pytest.raises(StorageError):
        await table.get("O1234")
