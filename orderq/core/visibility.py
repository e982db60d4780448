"""
VisibilityExtender — keeps a long-running message invisible while it is
being processed.

A consumer that expects to outlive the visibility window wraps its work in
VisibilityExtender; a background task pushes the window forward every
``interval`` so the message is not redelivered to another consumer.

Usage
-----
    [message] = await store.poll(visibility_timeout=timedelta(seconds=30))

    async with VisibilityExtender(store, message.id, timeout=timedelta(seconds=30)):
        await do_long_work(message.body)

    await store.delete(message.id)

If the body raises, the background task is cancelled and the message simply
expires at the end of its current window.
"""
from __future__ import annotations

import asyncio
import dataclasses
from datetime import timedelta
from types import TracebackType
from typing import Protocol

import structlog

from orderq.domain.errors import OrderQError

logger = structlog.get_logger(__name__)


class _ExtendsVisibility(Protocol):
    async def extend_visibility(self, message_id: str, timeout: timedelta) -> None: ...


@dataclasses.dataclass
class VisibilityExtender:
    """
    Parameters
    ----------
    queue      : any object with async extend_visibility(message_id, timeout)
    message_id : the in-flight message to keep hidden
    timeout    : new window length set on every extension
    interval   : time between extensions (default: half of ``timeout``)
    """

    queue: _ExtendsVisibility
    message_id: str
    timeout: timedelta = timedelta(seconds=30)
    interval: timedelta | None = None

    _interval: timedelta = dataclasses.field(init=False, repr=False)
    _task: asyncio.Task[None] | None = dataclasses.field(
        default=None, init=False, repr=False
    )

    def __post_init__(self) -> None:
        self._interval = self.timeout / 2 if self.interval is None else self.interval

    async def __aenter__(self) -> VisibilityExtender:
        self._task = asyncio.create_task(
            self._extend(), name=f"orderq-visibility-{self.message_id}"
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _extend(self) -> None:
        while True:
            await asyncio.sleep(self._interval.total_seconds())
            try:
                await self.queue.extend_visibility(self.message_id, self.timeout)
            except OrderQError as exc:
                # Deleted, expired or dead-lettered meanwhile.
                logger.debug(
                    "visibility_extension_stopped",
                    message_id=self.message_id,
                    reason=str(exc),
                )
                return
