"""
DynamoDBOrderTable — order rows in a DynamoDB table keyed by ``orderId``.

Install extras: pip install "orderq[aws]"

PutItem replaces the whole item for the key, so repeating a put with the
same record leaves the table unchanged. Reads are strongly consistent.
"""
from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

from orderq.adapters.aws import AwsClientConfig, aws_error_code
from orderq.domain.errors import StorageError
from orderq.domain.orders import OrderRecord

if TYPE_CHECKING:
    from aioboto3 import Session as AioBoto3Session


@dataclasses.dataclass
class DynamoDBOrderTable:
    """
    Parameters
    ----------
    table_name   : DynamoDB table with partition key ``orderId`` (S)
    session      : aioboto3.Session — created lazily from env vars if omitted
    region_name  : AWS region passed to the client
    endpoint_url : custom endpoint (DynamoDB Local, LocalStack)
    """

    table_name: str
    session: AioBoto3Session | None = None
    region_name: str | None = None
    endpoint_url: str | None = None

    _aws: AwsClientConfig = dataclasses.field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._aws = AwsClientConfig(
            session=self.session,
            region_name=self.region_name,
            endpoint_url=self.endpoint_url,
        )

    async def put(self, record: OrderRecord) -> None:
        try:
            async with self._aws.client("dynamodb") as ddb:
                await ddb.put_item(TableName=self.table_name, Item=to_item(record))
        except Exception as exc:
            raise StorageError(
                f"DynamoDB put of order {record.order_id!r} failed"
                f" ({aws_error_code(exc) or type(exc).__name__})",
                exc,
            ) from exc

    async def get(self, order_id: str) -> OrderRecord | None:
        try:
            async with self._aws.client("dynamodb") as ddb:
                response = await ddb.get_item(
                    TableName=self.table_name,
                    Key={"orderId": {"S": order_id}},
                    ConsistentRead=True,
                )
        except Exception as exc:
            raise StorageError(f"DynamoDB get of order {order_id!r} failed", exc) from exc
        item = response.get("Item")
        return None if item is None else from_item(item)


def to_item(record: OrderRecord) -> dict[str, dict[str, str]]:
    """OrderRecord → DynamoDB attribute-value map."""
    item: dict[str, dict[str, str]] = {}
    for key, value in record.to_row().items():
        if isinstance(value, int):
            item[key] = {"N": str(value)}
        else:
            item[key] = {"S": str(value)}
    return item


def from_item(item: dict[str, dict[str, Any]]) -> OrderRecord:
    """DynamoDB attribute-value map → OrderRecord."""
    row: dict[str, Any] = {}
    for key, attr in item.items():
        if "N" in attr:
            row[key] = int(attr["N"])
        else:
            row[key] = attr.get("S")
    return OrderRecord.model_validate(row)
