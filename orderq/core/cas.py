"""
CAS loop shared by every document orderq mutates.

  1. read current document + etag from storage
  2. apply a pure mutation function in memory
  3. write back with if_match=etag (retry from 1 on CASConflictError)

A mutation that returns the very object it was given is treated as a no-op
and skips the write. Retries use linear back-off (10ms × attempt); the last
CASConflictError is re-raised once ``max_retries`` is exhausted.
"""
from __future__ import annotations

import asyncio
from typing import Callable, TypeVar

from pydantic import BaseModel

from orderq.core import codec
from orderq.domain.errors import CASConflictError
from orderq.ports.storage import DocumentStoragePort

M = TypeVar("M", bound=BaseModel)


async def read_document(storage: DocumentStoragePort, model: type[M]) -> M:
    """Read-only snapshot of a document."""
    content, _ = await storage.read()
    return codec.decode(content, model)


async def mutate(
    storage: DocumentStoragePort,
    model: type[M],
    fn: Callable[[M], M],
    *,
    max_retries: int = 10,
) -> M:
    """
    Read-modify-write ``storage`` with ``fn`` until the CAS write lands.

    ``fn`` may run several times; it must be synchronous and must reset any
    results it reports through closures on every call. Exceptions raised by
    ``fn`` abort the mutation and propagate unchanged.
    """
    for attempt in range(max_retries):
        content, etag = await storage.read()
        state = codec.decode(content, model)
        new_state = fn(state)
        if new_state is state:
            return state
        try:
            await storage.write(codec.encode(new_state), if_match=etag)
            return new_state
        except CASConflictError:
            if attempt == max_retries - 1:
                raise
            await asyncio.sleep(0.01 * (attempt + 1))
    raise CASConflictError("max_retries must be at least 1")
