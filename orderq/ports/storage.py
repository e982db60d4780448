"""
DocumentStoragePort — where a single JSON document (queue state, dead-letter
entries, or an order table) is kept.

Any object satisfying this structural Protocol can act as the backend. The
queue store, the dead-letter sink and the document order table each own one
instance pointing at their own document.

CAS write contract
------------------
write(content, if_match=None)
  - if_match is None  → create-only put; fails if the document already exists
  - if_match is given → conditional put against that etag
      succeeds → returns the new etag (opaque str)
      fails    → raises CASConflictError

read()
  - Returns (content_bytes, etag_string)
  - A missing document reads as (b"", None), i.e. an empty state
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class DocumentStoragePort(Protocol):
    """
    Minimal interface required by the orderq core.

    Built-in adapters:
      - InMemoryStorage       — asyncio.Lock-based, for tests and single processes
      - LocalFileSystemStorage — lock file + atomic rename, POSIX single machine
      - S3Storage             — S3 If-Match / If-None-Match conditional writes
    """

    async def read(self) -> tuple[bytes, str | None]:
        """
        Read the current document.

        Returns
        -------
        content : bytes
            Raw bytes, b"" if the document does not exist yet.
        etag : str | None
            Version token to pass back as if_match; None if absent.
        """
        ...

    async def write(
        self,
        content: bytes,
        if_match: str | None = None,
    ) -> str:
        """
        Atomically replace the document.

        Raises
        ------
        CASConflictError   if the current etag is not if_match
        StorageError       for any other I/O failure
        """
        ...
