"""
In-memory stand-ins for the datastore, audit log and notifier.

The unit of work snapshots the whole state on entry and restores it on exit
unless commit() was called, so tests can check all-or-nothing behaviour
without SQLite.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from bakery.errors import DatastoreError
from bakery.models import (
    BATCH_ACTIVE,
    AuditEvent,
    Batch,
    NewBatch,
    Product,
    ReturnRecord,
    StaffNotification,
)


@dataclass
class _State:
    batches: dict = field(default_factory=dict)
    returns: dict = field(default_factory=dict)
    products: dict = field(default_factory=dict)
    next_batch_id: int = 1
    next_return_id: int = 1


class InMemoryBatchRepository:
    def __init__(self, store: "InMemoryDatastore"):
        self.store = store

    def add(self, new: NewBatch) -> Batch:
        s = self.store.state
        batch = Batch(
            batch_id=s.next_batch_id,
            product_id=new.product_id,
            quantity=new.quantity,
            original_price=new.original_price,
            sale_price=new.sale_price,
            date_added=new.date_added,
        )
        s.batches[batch.batch_id] = batch
        s.next_batch_id += 1
        return replace(batch)

    def get(self, batch_id: int) -> Optional[Batch]:
        b = self.store.state.batches.get(int(batch_id))
        return replace(b) if b else None

    def get_many(self, batch_ids: Iterable[int]) -> dict[int, Batch]:
        out = {}
        for i in batch_ids:
            b = self.get(i)
            if b is not None:
                out[b.batch_id] = b
        return out

    def list_active(self, product_id: Optional[int] = None) -> list[Batch]:
        rows = [
            replace(b)
            for b in self.store.state.batches.values()
            if b.status == BATCH_ACTIVE and (product_id is None or b.product_id == product_id)
        ]
        return sorted(rows, key=lambda b: (b.date_added, b.batch_id))

    def update_quantity(self, batch_id: int, *, quantity: Decimal, status: str, expected_version: int) -> bool:
        if self.store.conflicts_remaining > 0:
            self.store.conflicts_remaining -= 1
            return False
        b = self.store.state.batches.get(int(batch_id))
        if b is None or b.version != expected_version:
            return False
        self.store.state.batches[b.batch_id] = replace(
            b, quantity=quantity, status=status, version=b.version + 1
        )
        self.store.update_calls += 1
        return True


class InMemoryReturnRepository:
    def __init__(self, store: "InMemoryDatastore"):
        self.store = store

    def add(self, record: ReturnRecord) -> int:
        if self.store.fail_on_return_add:
            raise DatastoreError("disk I/O error")
        s = self.store.state
        if record.idempotency_key and any(
            r.idempotency_key == record.idempotency_key for r in s.returns.values()
        ):
            raise DatastoreError("UNIQUE constraint failed: returns.idempotency_key")
        return_id = s.next_return_id
        s.returns[return_id] = replace(record, return_id=return_id)
        s.next_return_id += 1
        return return_id

    def get(self, return_id: int) -> Optional[ReturnRecord]:
        return self.store.state.returns.get(int(return_id))

    def find_by_idempotency_key(self, key: str) -> Optional[ReturnRecord]:
        for r in self.store.state.returns.values():
            if r.idempotency_key == key:
                return r
        return None

    def list_by_date_range(self, start: date, end: date) -> list[ReturnRecord]:
        rows = [r for r in self.store.state.returns.values() if start <= r.return_date <= end]
        return sorted(rows, key=lambda r: (r.created_at, r.return_id), reverse=True)

    def delete(self, return_id: int) -> bool:
        return self.store.state.returns.pop(int(return_id), None) is not None

    def mark_notification_sent(self, return_id: int) -> None:
        r = self.store.state.returns.get(int(return_id))
        if r is not None:
            self.store.state.returns[r.return_id] = replace(r, notification_sent=True)


class InMemoryProductRepository:
    def __init__(self, store: "InMemoryDatastore"):
        self.store = store

    def get(self, product_id: int) -> Optional[Product]:
        return self.store.state.products.get(int(product_id))

    def get_many(self, product_ids: Iterable[int]) -> dict[int, Product]:
        return {
            int(i): self.store.state.products[int(i)]
            for i in product_ids
            if int(i) in self.store.state.products
        }

    def list_active(self) -> list[Product]:
        return sorted(
            (p for p in self.store.state.products.values() if p.is_active),
            key=lambda p: p.name,
        )


class InMemoryUnitOfWork:
    def __init__(self, store: "InMemoryDatastore"):
        self.store = store
        self.batches = InMemoryBatchRepository(store)
        self.returns = InMemoryReturnRepository(store)
        self.products = InMemoryProductRepository(store)
        self._snapshot: Optional[_State] = None

    def __enter__(self) -> "InMemoryUnitOfWork":
        self._snapshot = copy.deepcopy(self.store.state)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.rollback()

    def commit(self) -> None:
        self._snapshot = copy.deepcopy(self.store.state)
        self.store.commits += 1

    def rollback(self) -> None:
        self.store.state = copy.deepcopy(self._snapshot)


class InMemoryDatastore:
    def __init__(self):
        self.state = _State()
        self.commits = 0
        self.update_calls = 0
        # update_quantity reports a lost race this many times before succeeding
        self.conflicts_remaining = 0
        self.fail_on_return_add = False

    def unit_of_work(self, readonly: bool = False) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(self)

    def add_product(
        self,
        name: str,
        original_price="100",
        sale_price="150",
        default_return_percentage="20",
    ) -> Product:
        product_id = len(self.state.products) + 1
        p = Product(
            product_id=product_id,
            name=name,
            category=None,
            original_price=Decimal(str(original_price)),
            sale_price=Decimal(str(sale_price)),
            default_return_percentage=Decimal(str(default_return_percentage)),
        )
        self.state.products[product_id] = p
        return p

    def add_batch(self, product_id: int, quantity, date_added: date, original_price="100", sale_price="150") -> Batch:
        with self.unit_of_work() as uow:
            b = uow.batches.add(
                NewBatch(
                    product_id=product_id,
                    quantity=Decimal(str(quantity)),
                    original_price=Decimal(str(original_price)),
                    sale_price=Decimal(str(sale_price)),
                    date_added=date_added,
                )
            )
            uow.commit()
        return b

    def batch(self, batch_id: int) -> Batch:
        return self.state.batches[batch_id]


class RecordingAudit:
    def __init__(self):
        self.events: list[AuditEvent] = []

    def log_event(self, event: AuditEvent) -> None:
        self.events.append(event)


class FailingAudit:
    def log_event(self, event: AuditEvent) -> None:
        raise DatastoreError("audit store unavailable")


class RecordingNotifier:
    def __init__(self):
        self.sent: list[StaffNotification] = []

    def notify(self, notification: StaffNotification) -> None:
        self.sent.append(notification)


class FailingNotifier:
    def notify(self, notification: StaffNotification) -> None:
        raise RuntimeError("mail server down")
