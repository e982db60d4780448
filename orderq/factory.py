"""
Wiring — build the queue store, dead-letter sink, persistence sink and
workers described by a Settings instance.

Documents per backend:
  memory     — three InMemoryStorage instances (lost at exit)
  filesystem — <data_dir>/queue.json, dead_letters.json, orders.json
  s3         — s3://<bucket>/<prefix>/queue.json, dead_letters.json, orders.json
"""
from __future__ import annotations

import dataclasses

from orderq.adapters.storage.filesystem import LocalFileSystemStorage
from orderq.adapters.storage.memory import InMemoryStorage
from orderq.adapters.storage.s3 import S3Storage
from orderq.adapters.table.document import DocumentOrderTable
from orderq.adapters.table.dynamodb import DynamoDBOrderTable
from orderq.config import Settings
from orderq.core.dead_letter import DeadLetterSink
from orderq.core.orders import OrderHandler, decode_order
from orderq.core.sink import PersistenceSink
from orderq.core.store import QueueStore
from orderq.core.worker import ConsumerWorker
from orderq.domain.orders import OrderRecord
from orderq.ports.storage import DocumentStoragePort
from orderq.ports.table import OrderTablePort


@dataclasses.dataclass
class Runtime:
    settings: Settings
    store: QueueStore
    dead_letters: DeadLetterSink
    sink: PersistenceSink

    def handler(self) -> OrderHandler:
        return OrderHandler(self.sink)

    def worker(self, name: str = "worker") -> ConsumerWorker[OrderRecord]:
        return ConsumerWorker(
            store=self.store,
            decode=decode_order,
            release_on_failure=self.settings.release_on_failure,
            extend_visibility=self.settings.extend_visibility,
            wait_time=self.settings.wait_time,
            name=name,
        )


def document_storage(settings: Settings, name: str) -> DocumentStoragePort:
    """Storage for the document called ``name`` ("queue", "dead_letters", "orders")."""
    match settings.backend:
        case "memory":
            return InMemoryStorage()
        case "filesystem":
            return LocalFileSystemStorage(settings.data_dir / f"{name}.json")
        case "s3":
            if not settings.s3_bucket:
                raise ValueError("s3 backend requires s3_bucket")
            return S3Storage(
                bucket=settings.s3_bucket,
                key=f"{settings.s3_prefix.rstrip('/')}/{name}.json",
                region_name=settings.aws_region,
                endpoint_url=settings.aws_endpoint_url,
            )
    raise ValueError(f"unknown backend {settings.backend!r}")


def order_table(settings: Settings) -> OrderTablePort:
    if settings.table_backend == "dynamodb":
        return DynamoDBOrderTable(
            table_name=settings.table_name,
            region_name=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url,
        )
    return DocumentOrderTable(document_storage(settings, "orders"))


def build_runtime(settings: Settings) -> Runtime:
    dead_letters = DeadLetterSink(document_storage(settings, "dead_letters"))
    store = QueueStore(
        storage=document_storage(settings, "queue"),
        dead_letters=dead_letters,
        max_receives=settings.max_receives,
        poll_interval=settings.poll_interval,
    )
    return Runtime(
        settings=settings,
        store=store,
        dead_letters=dead_letters,
        sink=PersistenceSink(order_table(settings)),
    )
