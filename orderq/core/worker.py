"""
ConsumerWorker — poll, decode, handle, acknowledge.

One poll cycle:

  store.poll(batch_size, visibility_timeout)      messages become in flight
    for each message:
      decode(body)                                DecodeError → failure
      handler(decoded) before visible_at          any exception → failure
      success  → store.delete(id)                 the acknowledgment
      failure  → store.report_failure(id, error)  message stays in flight

There is no retry loop in the worker. A failed message is redelivered when
its visibility window expires (or at once with ``release_on_failure``), and
the delivery tracker dead-letters it once max_receives is used up.

Failures never escape a cycle: the worker keeps running until stop() is
called. Several workers may share one QueueStore; the store's CAS claim keeps
them from processing the same message concurrently.
"""
from __future__ import annotations

import asyncio
import dataclasses
from datetime import timedelta
from typing import Awaitable, Callable, Generic, NamedTuple, TypeVar

import structlog

from orderq.core.store import QueueStore
from orderq.core.visibility import VisibilityExtender
from orderq.domain.errors import (
    DecodeError,
    OrderQError,
    ProcessingError,
)
from orderq.domain.models import Message

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Handler = Callable[[T], Awaitable[None]]


class CycleResult(NamedTuple):
    received: int
    acked: int
    failed: int


@dataclasses.dataclass
class ConsumerWorker(Generic[T]):
    """
    Parameters
    ----------
    store              : queue to consume from
    decode             : turns a message body into the handler's input
    release_on_failure : hand failed messages back at once instead of waiting
                         for the visibility window to expire
    extend_visibility  : keep extending the window while the handler runs,
                         instead of bounding the handler by it
    wait_time          : long-poll duration for each poll
    error_backoff      : pause after a cycle failed on the queue itself
    name               : label used in log events
    """

    store: QueueStore
    decode: Callable[[bytes], T]
    release_on_failure: bool = False
    extend_visibility: bool = False
    wait_time: timedelta = timedelta(seconds=1)
    error_backoff: timedelta = timedelta(seconds=1)
    name: str = "worker"

    _stopping: asyncio.Event = dataclasses.field(
        default_factory=asyncio.Event, init=False, repr=False
    )

    def stop(self) -> None:
        """Ask run() to return after the current cycle."""
        self._stopping.set()

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    async def run(
        self,
        batch_size: int,
        visibility_timeout: timedelta,
        handler: Handler[T],
        *,
        max_cycles: int | None = None,
        until_empty: bool = False,
    ) -> int:
        """
        Poll until stopped. Returns the number of messages acknowledged.

        ``max_cycles`` bounds the number of poll cycles; ``until_empty``
        returns after the first poll that comes back empty.
        """
        log = logger.bind(worker=self.name)
        log.info(
            "worker_started",
            batch_size=batch_size,
            visibility_timeout=visibility_timeout.total_seconds(),
        )
        cycles = 0
        acked = 0
        while not self.stopping and (max_cycles is None or cycles < max_cycles):
            cycles += 1
            try:
                result = await self.run_once(batch_size, visibility_timeout, handler)
            except OrderQError:
                log.exception("poll_cycle_failed")
                await asyncio.sleep(self.error_backoff.total_seconds())
                continue
            acked += result.acked
            if until_empty and result.received == 0:
                break
        log.info("worker_stopped", cycles=cycles, acked=acked)
        return acked

    async def run_once(
        self,
        batch_size: int,
        visibility_timeout: timedelta,
        handler: Handler[T],
    ) -> CycleResult:
        """One poll cycle. Handler failures never escape it."""
        messages = await self.store.poll(
            batch_size, visibility_timeout, wait_time=self.wait_time
        )

        acked = 0
        for message in messages:
            if await self._process(message, visibility_timeout, handler):
                acked += 1
        return CycleResult(
            received=len(messages), acked=acked, failed=len(messages) - acked
        )

    async def _process(
        self,
        message: Message,
        visibility_timeout: timedelta,
        handler: Handler[T],
    ) -> bool:
        log = logger.bind(
            worker=self.name,
            message_id=message.id,
            attempt=message.receive_count + 1,
        )
        # Every message of a batch was claimed by the same poll; the budget is
        # what is left of this message's window, not a fresh timeout.
        remaining = message.visible_at - self.store.clock()
        if remaining <= timedelta(0):
            log.warning("message_window_expired")
            return False
        try:
            decoded = self.decode(message.body)
            await self._invoke(message, decoded, remaining, visibility_timeout, handler)
        except DecodeError as exc:
            log.warning("message_decode_failed", error=str(exc))
            await self._fail(message, exc)
            return False
        except ProcessingError as exc:
            log.warning(
                "message_processing_failed", error=str(exc), error_type=type(exc).__name__
            )
            await self._fail(message, exc)
            return False
        except TimeoutError as exc:
            log.warning("message_handler_timeout", budget=remaining.total_seconds())
            await self._fail(message, exc, "handler exceeded visibility timeout")
            return False
        except Exception as exc:
            log.exception("message_handler_crashed", error_type=type(exc).__name__)
            await self._fail(message, exc)
            return False

        await self.store.delete(message.id)
        log.info("message_acked")
        return True

    async def _invoke(
        self,
        message: Message,
        decoded: T,
        remaining: timedelta,
        visibility_timeout: timedelta,
        handler: Handler[T],
    ) -> None:
        if self.extend_visibility:
            async with VisibilityExtender(
                self.store,
                message.id,
                timeout=visibility_timeout,
                interval=min(visibility_timeout, remaining) / 2,
            ):
                await handler(decoded)
        else:
            await asyncio.wait_for(handler(decoded), remaining.total_seconds())

    async def _fail(
        self, message: Message, exc: BaseException, text: str | None = None
    ) -> None:
        error = f"{type(exc).__name__}: {text or exc}"
        await self.store.report_failure(
            message.id, error, release=self.release_on_failure
        )
