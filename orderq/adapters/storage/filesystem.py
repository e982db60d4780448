"""
LocalFileSystemStorage — CAS document in a local file, for development and
single-machine deployments.

Locking
-------
An exclusive fcntl.flock on a sidecar ``<name>.lock`` file serializes
writers across processes on the same machine. Readers take the shared lock.
The document itself is never written in place: new content goes to a
temporary file in the same directory and is moved over the document with
os.replace, so a crash mid-write leaves either the old or the new document,
never a truncated one.

Etags
-----
SHA-256 hex digest of the file content. An absent or empty file has no etag.

POSIX-only. Not for NFS or other distributed filesystems.
"""

from __future__ import annotations

import asyncio
import contextlib
import fcntl
import hashlib
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path

from orderq.domain.errors import CASConflictError, StorageError


class LocalFileSystemStorage:
    """
    Parameters
    ----------
    path : the JSON document (parent directories are created on first write)
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock_path = self.path.with_name(self.path.name + ".lock")

    def __repr__(self) -> str:
        return f"LocalFileSystemStorage(path={str(self.path)!r})"

    async def read(self) -> tuple[bytes, str | None]:
        """Return (content, etag); (b"", None) when the file does not exist."""
        return await asyncio.to_thread(self._sync_read)

    async def write(
        self,
        content: bytes,
        if_match: str | None = None,
    ) -> str:
        """CAS write. Raises CASConflictError on etag mismatch."""
        return await asyncio.to_thread(self._sync_write, content, if_match)

    # ------------------------------------------------------------------ #
    # Synchronous implementations (executed in a thread-pool worker)      #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _etag(data: bytes) -> str | None:
        return hashlib.sha256(data).hexdigest() if data else None

    @contextlib.contextmanager
    def _locked(self, mode: int) -> Iterator[None]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._lock_path, "a+b") as lock:
            fcntl.flock(lock, mode)
            try:
                yield
            finally:
                fcntl.flock(lock, fcntl.LOCK_UN)

    def _current(self) -> bytes:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return b""

    def _sync_read(self) -> tuple[bytes, str | None]:
        if not self.path.exists():
            return b"", None
        try:
            with self._locked(fcntl.LOCK_SH):
                content = self._current()
        except OSError as exc:
            raise StorageError(f"read of {self.path} failed", exc) from exc
        return content, self._etag(content)

    def _sync_write(self, content: bytes, if_match: str | None) -> str:
        try:
            with self._locked(fcntl.LOCK_EX):
                current = self._etag(self._current())
                if current != if_match:
                    raise CASConflictError(
                        f"ETag mismatch: expected {if_match!r}, current {current!r}"
                    )
                fd, tmp = tempfile.mkstemp(
                    dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
                )
                try:
                    with os.fdopen(fd, "wb") as fh:
                        fh.write(content)
                        fh.flush()
                        os.fsync(fh.fileno())
                    os.replace(tmp, self.path)
                except BaseException:
                    with contextlib.suppress(FileNotFoundError):
                        os.unlink(tmp)
                    raise
        except OSError as exc:
            raise StorageError(f"write of {self.path} failed", exc) from exc

        etag = self._etag(content)
        assert etag is not None, "documents are never empty"
        return etag
