from __future__ import annotations

from contextlib import closing
from datetime import date
from decimal import Decimal

import pytest

from bakery.db import connect, ensure_schema
from bakery.models import NewBatch
from bakery.repositories import SqliteDatastore

from fakes import InMemoryDatastore


@pytest.fixture
def store(tmp_path):
    """SQLite datastore on a fresh file with the schema applied."""
    db_path = tmp_path / "bakery.db"
    with closing(connect(db_path)) as conn:
        ensure_schema(conn)
    return SqliteDatastore(db_path, timeout=1.0)


@pytest.fixture
def products(store):
    """Two catalogue products; returns {name: id}."""
    rows = [
        ("Chocolate Cake", "Cakes", 100.0, 150.0, 20.0),
        ("Sandwich Bread", "Bread", 50.0, 80.0, 100.0),
    ]
    with closing(store.connect()) as conn:
        for r in rows:
            conn.execute(
                """
                INSERT INTO products (name, category, original_price, sale_price, default_return_percentage)
                VALUES (?, ?, ?, ?, ?)
                """,
                r,
            )
        conn.commit()
        ids = {row["name"]: int(row["id"]) for row in conn.execute("SELECT id, name FROM products")}
    return ids


@pytest.fixture
def add_batch(store):
    """Insert an active batch directly; returns the Batch."""

    def _add(product_id: int, quantity, date_added: date, original_price="100", sale_price="150"):
        with store.unit_of_work() as uow:
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

    return _add


@pytest.fixture
def mem_store():
    return InMemoryDatastore()
