"""
InMemoryStorage — asyncio.Lock-based CAS document for tests and
single-process deployments.

The etag is a monotonically increasing integer (stringified). A document
that has never been written has no etag, so only a create-only write
(if_match=None) can succeed against it.

Safe for many coroutines in one event loop. NOT shared across processes.
"""
from __future__ import annotations

import asyncio
import dataclasses
import itertools

from orderq.domain.errors import CASConflictError


@dataclasses.dataclass
class InMemoryStorage:
    """
    Parameters
    ----------
    initial_content : optional pre-populated document (useful for test setup)
    """

    initial_content: bytes = b""

    _content: bytes = dataclasses.field(init=False, repr=False)
    _etag: str | None = dataclasses.field(init=False, repr=False)
    _versions: itertools.count = dataclasses.field(init=False, repr=False)
    _lock: asyncio.Lock = dataclasses.field(
        default_factory=asyncio.Lock, init=False, repr=False
    )

    def __post_init__(self) -> None:
        self._versions = itertools.count(1)
        self._content = self.initial_content
        self._etag = "0" if self.initial_content else None

    @property
    def writes(self) -> int:
        """Number of successful writes so far."""
        return 0 if self._etag is None else int(self._etag)

    async def read(self) -> tuple[bytes, str | None]:
        async with self._lock:
            return self._content, self._etag

    async def write(
        self,
        content: bytes,
        if_match: str | None = None,
    ) -> str:
        """Replace the document if ``if_match`` is the current etag."""
        async with self._lock:
            if if_match != self._etag:
                raise CASConflictError(
                    f"ETag mismatch: expected {if_match!r}, current {self._etag!r}"
                )
            self._etag = str(next(self._versions))
            self._content = content
            return self._etag
