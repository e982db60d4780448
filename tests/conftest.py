import json
from datetime import UTC, datetime, timedelta

import pytest

from orderq.adapters.storage.memory import InMemoryStorage
from orderq.adapters.table.document import DocumentOrderTable
from orderq.core.dead_letter import DeadLetterSink
from orderq.core.sink import PersistenceSink
from orderq.core.store import QueueStore

ORDER = {
    "orderId": "O1234",
    "userId": "U456",
    "itemName": "Laptop",
    "quantity": 1,
    "status": "new",
    "timestamp": "2025-05-05T15:00:00Z",
}


class FakeClock:
    """Manually advanced clock for visibility-timeout tests."""

    def __init__(self, start: datetime = datetime(2025, 5, 5, 15, 0, tzinfo=UTC)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def order_body() -> bytes:
    return json.dumps(ORDER).encode()


@pytest.fixture
def dead_letters(clock: FakeClock) -> DeadLetterSink:
    return DeadLetterSink(storage=InMemoryStorage(), clock=clock)


@pytest.fixture
def store(dead_letters: DeadLetterSink, clock: FakeClock) -> QueueStore:
    return QueueStore(
        storage=InMemoryStorage(),
        dead_letters=dead_letters,
        poll_interval=timedelta(milliseconds=1),
        clock=clock,
    )


@pytest.fixture
def table() -> DocumentOrderTable:
    return DocumentOrderTable(storage=InMemoryStorage())


@pytest.fixture
def sink(table: DocumentOrderTable) -> PersistenceSink:
    return PersistenceSink(table=table)
