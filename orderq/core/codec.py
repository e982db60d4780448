"""
Codec — serialize and deserialize documents to/from bytes using Pydantic v2.

The same two functions handle every document orderq keeps: QueueState,
DeadLetterState and the document order table.

Queue document wire format:
---------------------------
{
  "messages": [
    {
      "id": "550e8400-...",
      "body": "eyJvcmRlcklkIjogIk8xMjM0In0=",   <-- base64-encoded bytes
      "status": "in_flight",
      "receive_count": 1,
      "max_receives": 3,
      "enqueued_at": "2025-05-05T15:00:00Z",
      "visible_at": "2025-05-05T15:00:30Z",
      "last_error": "WriteError: table unavailable"
    }
  ],
  "version": 4
}
"""
from __future__ import annotations

from typing import TypeVar

from pydantic import BaseModel

M = TypeVar("M", bound=BaseModel)


def encode(document: BaseModel) -> bytes:
    """Serialize a document model to UTF-8 JSON bytes."""
    return document.model_dump_json(indent=2).encode("utf-8")


def decode(data: bytes, model: type[M]) -> M:
    """Deserialize UTF-8 JSON bytes. Empty bytes → the model's empty default."""
    if not data:
        return model()
    return model.model_validate_json(data)
