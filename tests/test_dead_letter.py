import pytest

from orderq.adapters.storage.memory import InMemoryStorage
from orderq.core.dead_letter import DeadLetterSink
from orderq.domain.errors import EscalationError, StorageError
from orderq.domain.models import Message, MessageStatus


def _exhausted(clock, body: bytes = b"body") -> Message:
    return Message.new(body, clock()).model_copy(
        update={
            "status": MessageStatus.DEAD_LETTERED,
            "receive_count": 3,
            "last_error": "WriteError: table unavailable",
        }
    )


async def test_deposit_stores_failure_metadata(dead_letters: DeadLetterSink, clock):
    message = _exhausted(clock)
    clock.advance(minutes=5)

    entry = await dead_letters.deposit(message)

    assert entry.message_id == message.id
    assert entry.body == b"body"
    assert entry.receive_count == 3
    assert entry.first_seen == message.enqueued_at
    assert entry.last_error == "WriteError: table unavailable"
    assert entry.dead_lettered_at == clock()
    assert await dead_letters.get(message.id) == entry


async def test_deposit_is_write_once(clock):
    storage = InMemoryStorage()
    dead_letters = DeadLetterSink(storage=storage, clock=clock)
    message = _exhausted(clock)

    first = await dead_letters.deposit(message)
    clock.advance(minutes=1)
    second = await dead_letters.deposit(message.with_error("later"))

    assert second == first
    assert storage.writes == 1
    assert len(await dead_letters.list()) == 1


async def test_list_in_deposit_order(dead_letters: DeadLetterSink, clock):
    a = _exhausted(clock, b"a")
    b = _exhausted(clock, b"b")
    await dead_letters.deposit(a)
    await dead_letters.deposit(b)

    assert [e.message_id for e in await dead_letters.list()] == [a.id, b.id]


async def test_list_empty(dead_letters: DeadLetterSink):
    assert await dead_letters.list() == []
    assert await dead_letters.get("missing") is None


async def test_storage_failure_raises_escalation_error(clock):
    storage = InMemoryStorage()

    async def _broken_write(content: bytes, if_match: str | None = None) -> str:
        raise StorageError("bucket unreachable", OSError("timeout"))

    storage.write = _broken_write  # type: ignore[method-assign]
    dead_letters = DeadLetterSink(storage=storage, clock=clock)
    message = _exhausted(clock)

    with pytest.raises(EscalationError) as exc_info:
        await dead_letters.deposit(message)

    assert exc_info.value.message_id == message.id
    assert isinstance(exc_info.value.cause, StorageError)


async def test_entries_survive_reopening_storage(clock):
    storage = InMemoryStorage()
    message = _exhausted(clock)
    await DeadLetterSink(storage=storage, clock=clock).deposit(message)

    reopened = DeadLetterSink(storage=storage)
    entry = await reopened.get(message.id)
    assert entry is not None
    assert entry.dead_lettered_at == clock()
