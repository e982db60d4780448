"""
Order records — the payload carried by queue messages and stored in the table.

Wire and table rows use camelCase keys (``orderId``, ``userId``, ...);
Python code uses the snake_case attribute names.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OrderStatus(str, Enum):
    NEW = "new"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderRecord(BaseModel):
    """
    One order, keyed by ``order_id``.

    Every field is required. ``quantity`` must be a positive integer; JSON
    numbers with no fractional part (``2.0``) are accepted, numeric strings and
    booleans are not. ``timestamp`` must be an ISO-8601 string.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, str_strip_whitespace=True)

    order_id: str = Field(alias="orderId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    item_name: str = Field(alias="itemName", min_length=1)
    quantity: int = Field(gt=0)
    status: OrderStatus
    timestamp: datetime

    @field_validator("status", mode="before")
    @classmethod
    def _normalise_status(cls, v: object) -> object:
        return v.lower() if isinstance(v, str) else v

    @field_validator("quantity", mode="before")
    @classmethod
    def _require_number(cls, v: object) -> object:
        # bool is an int subclass; numeric strings are not numbers on the wire
        if isinstance(v, (bool, str)):
            raise ValueError(f"quantity must be a number, got {type(v).__name__}")
        return v

    @field_validator("timestamp", mode="before")
    @classmethod
    def _require_iso_string(cls, v: object) -> object:
        if not isinstance(v, (str, datetime)):
            raise ValueError(
                f"timestamp must be an ISO-8601 string, got {type(v).__name__}"
            )
        return v

    def to_row(self) -> dict[str, object]:
        """Table row: camelCase keys, enum and timestamp as strings."""
        return self.model_dump(mode="json", by_alias=True)
