"""
Typed persistence interfaces for batches, returns and products, and their
SQLite implementations.

Services never talk SQL directly: they open a unit of work on a `Datastore`,
use the repositories it exposes and commit. Anything not committed when the
unit of work closes is rolled back.
"""
from __future__ import annotations

import json
import sqlite3
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Optional, Protocol

from bakery.db import DEFAULT_TIMEOUT_SECONDS, connect
from bakery.errors import DatastoreError
from bakery.models import (
    BATCH_ACTIVE,
    Batch,
    NewBatch,
    Product,
    ReturnLine,
    ReturnRecord,
)
from bakery.utils import iso_now, parse_date, to_decimal


class BatchRepository(Protocol):
    def add(self, new: NewBatch) -> Batch:
        ...

    def get(self, batch_id: int) -> Optional[Batch]:
        ...

    def get_many(self, batch_ids: Iterable[int]) -> dict[int, Batch]:
        ...

    def list_active(self, product_id: Optional[int] = None) -> list[Batch]:
        ...

    def update_quantity(self, batch_id: int, *, quantity: Decimal, status: str, expected_version: int) -> bool:
        """Conditional write: False when the stored version no longer matches."""
        ...


class ReturnRepository(Protocol):
    def add(self, record: ReturnRecord) -> int:
        ...

    def get(self, return_id: int) -> Optional[ReturnRecord]:
        ...

    def find_by_idempotency_key(self, key: str) -> Optional[ReturnRecord]:
        ...

    def list_by_date_range(self, start: date, end: date) -> list[ReturnRecord]:
        ...

    def delete(self, return_id: int) -> bool:
        ...

    def mark_notification_sent(self, return_id: int) -> None:
        ...


class ProductRepository(Protocol):
    def get(self, product_id: int) -> Optional[Product]:
        ...

    def get_many(self, product_ids: Iterable[int]) -> dict[int, Product]:
        ...

    def list_active(self) -> list[Product]:
        ...


class UnitOfWork(Protocol):
    batches: BatchRepository
    returns: ReturnRepository
    products: ProductRepository

    def __enter__(self) -> "UnitOfWork":
        ...

    def __exit__(self, exc_type, exc, tb) -> None:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...


class Datastore(Protocol):
    def unit_of_work(self, readonly: bool = False) -> UnitOfWork:
        ...


# -------------------------
# SQLite implementation
# -------------------------

def _num(d: Decimal) -> float:
    return float(d)


def _dec(v) -> Decimal:
    d = to_decimal(v)
    return d if d is not None else Decimal("0")


def _row_to_batch(r: sqlite3.Row) -> Batch:
    return Batch(
        batch_id=int(r["id"]),
        product_id=int(r["product_id"]),
        quantity=_dec(r["quantity"]),
        original_price=_dec(r["original_price"]),
        sale_price=_dec(r["sale_price"]),
        date_added=parse_date(r["date_added"]),
        status=str(r["status"]),
        version=int(r["version"]),
        created_at=r["created_at"],
        updated_at=r["updated_at"],
    )


def _row_to_product(r: sqlite3.Row) -> Product:
    return Product(
        product_id=int(r["id"]),
        name=str(r["name"]),
        category=r["category"],
        original_price=_dec(r["original_price"]),
        sale_price=_dec(r["sale_price"]),
        default_return_percentage=_dec(r["default_return_percentage"]),
        is_active=bool(r["is_active"]),
    )


def _placeholders(n: int) -> str:
    return ",".join("?" for _ in range(n))


class SqliteBatchRepository:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def add(self, new: NewBatch) -> Batch:
        ts = iso_now()
        cur = self.conn.execute(
            """
            INSERT INTO inventory_batches (
                product_id, quantity, original_price, sale_price,
                date_added, status, version, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, 'active', 0, ?, ?)
            """,
            (
                int(new.product_id),
                _num(new.quantity),
                _num(new.original_price),
                _num(new.sale_price),
                new.date_added.isoformat(),
                ts,
                ts,
            ),
        )
        return self.get(int(cur.lastrowid))

    def get(self, batch_id: int) -> Optional[Batch]:
        r = self.conn.execute("SELECT * FROM inventory_batches WHERE id=?", (int(batch_id),)).fetchone()
        return _row_to_batch(r) if r else None

    def get_many(self, batch_ids: Iterable[int]) -> dict[int, Batch]:
        ids = [int(i) for i in batch_ids]
        if not ids:
            return {}
        rows = self.conn.execute(
            f"SELECT * FROM inventory_batches WHERE id IN ({_placeholders(len(ids))})",
            tuple(ids),
        ).fetchall()
        return {int(r["id"]): _row_to_batch(r) for r in rows}

    def list_active(self, product_id: Optional[int] = None) -> list[Batch]:
        # id breaks date ties: creation order
        if product_id is None:
            rows = self.conn.execute(
                "SELECT * FROM inventory_batches WHERE status=? ORDER BY date_added ASC, id ASC",
                (BATCH_ACTIVE,),
            ).fetchall()
        else:
            rows = self.conn.execute(
                """
                SELECT * FROM inventory_batches
                WHERE status=? AND product_id=?
                ORDER BY date_added ASC, id ASC
                """,
                (BATCH_ACTIVE, int(product_id)),
            ).fetchall()
        return [_row_to_batch(r) for r in rows]

    def update_quantity(self, batch_id: int, *, quantity: Decimal, status: str, expected_version: int) -> bool:
        cur = self.conn.execute(
            """
            UPDATE inventory_batches
            SET quantity=?, status=?, version=version + 1, updated_at=?
            WHERE id=? AND version=?
            """,
            (_num(quantity), str(status), iso_now(), int(batch_id), int(expected_version)),
        )
        return cur.rowcount == 1


class SqliteReturnRepository:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def add(self, record: ReturnRecord) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO returns (
                return_date, processed_by, processed_at,
                total_value, total_quantity, total_batches,
                kept_batch_ids, notification_sent, idempotency_key
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.return_date.isoformat(),
                str(record.processed_by),
                record.created_at,
                _num(record.total_value),
                _num(record.total_quantity),
                int(record.total_batches),
                json.dumps([int(b) for b in record.kept_batch_ids]),
                1 if record.notification_sent else 0,
                record.idempotency_key,
            ),
        )
        return_id = int(cur.lastrowid)

        self.conn.executemany(
            """
            INSERT INTO return_items (
                return_id, batch_id, product_id, product_name, quantity,
                age_at_return, date_batch_added, original_price, sale_price,
                return_percentage, return_value_per_unit, total_return_value
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    return_id,
                    int(line.batch_id),
                    int(line.product_id),
                    line.product_name,
                    _num(line.quantity_returned),
                    int(line.age_at_return),
                    line.date_batch_added.isoformat(),
                    _num(line.original_price),
                    _num(line.sale_price),
                    _num(line.return_percentage),
                    _num(line.return_value_per_unit),
                    _num(line.value),
                )
                for line in record.lines
            ],
        )
        return return_id

    def _lines(self, return_id: int) -> tuple[ReturnLine, ...]:
        rows = self.conn.execute(
            "SELECT * FROM return_items WHERE return_id=? ORDER BY id ASC",
            (int(return_id),),
        ).fetchall()
        return tuple(
            ReturnLine(
                batch_id=int(r["batch_id"]) if r["batch_id"] is not None else None,
                product_id=int(r["product_id"]) if r["product_id"] is not None else None,
                product_name=str(r["product_name"]),
                quantity_returned=_dec(r["quantity"]),
                return_percentage=_dec(r["return_percentage"]),
                return_value_per_unit=_dec(r["return_value_per_unit"]),
                value=_dec(r["total_return_value"]),
                original_price=_dec(r["original_price"]),
                sale_price=_dec(r["sale_price"]),
                date_batch_added=parse_date(r["date_batch_added"]),
                age_at_return=int(r["age_at_return"]),
            )
            for r in rows
        )

    def _to_record(self, r: sqlite3.Row) -> ReturnRecord:
        return ReturnRecord(
            return_id=int(r["id"]),
            processed_by=str(r["processed_by"]),
            return_date=parse_date(r["return_date"]),
            lines=self._lines(int(r["id"])),
            total_quantity=_dec(r["total_quantity"]),
            total_value=_dec(r["total_value"]),
            kept_batch_ids=tuple(int(b) for b in json.loads(r["kept_batch_ids"] or "[]")),
            created_at=str(r["processed_at"]),
            notification_sent=bool(r["notification_sent"]),
            idempotency_key=r["idempotency_key"],
        )

    def get(self, return_id: int) -> Optional[ReturnRecord]:
        r = self.conn.execute("SELECT * FROM returns WHERE id=?", (int(return_id),)).fetchone()
        return self._to_record(r) if r else None

    def find_by_idempotency_key(self, key: str) -> Optional[ReturnRecord]:
        r = self.conn.execute("SELECT * FROM returns WHERE idempotency_key=?", (str(key),)).fetchone()
        return self._to_record(r) if r else None

    def list_by_date_range(self, start: date, end: date) -> list[ReturnRecord]:
        rows = self.conn.execute(
            """
            SELECT * FROM returns
            WHERE return_date >= ? AND return_date <= ?
            ORDER BY processed_at DESC, id DESC
            """,
            (start.isoformat(), end.isoformat()),
        ).fetchall()
        return [self._to_record(r) for r in rows]

    def delete(self, return_id: int) -> bool:
        self.conn.execute("DELETE FROM return_items WHERE return_id=?", (int(return_id),))
        cur = self.conn.execute("DELETE FROM returns WHERE id=?", (int(return_id),))
        return cur.rowcount == 1

    def mark_notification_sent(self, return_id: int) -> None:
        self.conn.execute("UPDATE returns SET notification_sent=1 WHERE id=?", (int(return_id),))


class SqliteProductRepository:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get(self, product_id: int) -> Optional[Product]:
        r = self.conn.execute("SELECT * FROM products WHERE id=?", (int(product_id),)).fetchone()
        return _row_to_product(r) if r else None

    def get_many(self, product_ids: Iterable[int]) -> dict[int, Product]:
        ids = sorted({int(i) for i in product_ids})
        if not ids:
            return {}
        rows = self.conn.execute(
            f"SELECT * FROM products WHERE id IN ({_placeholders(len(ids))})",
            tuple(ids),
        ).fetchall()
        return {int(r["id"]): _row_to_product(r) for r in rows}

    def list_active(self) -> list[Product]:
        rows = self.conn.execute("SELECT * FROM products WHERE is_active=1 ORDER BY name").fetchall()
        return [_row_to_product(r) for r in rows]


class SqliteUnitOfWork:
    """
    One transaction on its own connection. Writers start with BEGIN IMMEDIATE so
    concurrent read-modify-write sequences on the same batches serialise; lock
    waits are bounded by the connection timeout.
    """

    def __init__(self, db_path: Path, *, timeout: float = DEFAULT_TIMEOUT_SECONDS, readonly: bool = False):
        self.db_path = db_path
        self.timeout = timeout
        self.readonly = readonly
        self.conn: Optional[sqlite3.Connection] = None

    def __enter__(self) -> "SqliteUnitOfWork":
        try:
            self.conn = connect(self.db_path, timeout=self.timeout)
            self.conn.execute("BEGIN" if self.readonly else "BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            if self.conn is not None:
                self.conn.close()
                self.conn = None
            raise DatastoreError(str(e)) from e

        self.batches = SqliteBatchRepository(self.conn)
        self.returns = SqliteReturnRepository(self.conn)
        self.products = SqliteProductRepository(self.conn)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self.conn is not None and self.conn.in_transaction:
                self.conn.rollback()
        finally:
            if self.conn is not None:
                self.conn.close()
                self.conn = None

        if exc is not None and isinstance(exc, sqlite3.Error):
            raise DatastoreError(str(exc)) from exc

    def commit(self) -> None:
        try:
            self.conn.commit()
        except sqlite3.Error as e:
            raise DatastoreError(str(e)) from e

    def rollback(self) -> None:
        self.conn.rollback()


class SqliteDatastore:
    def __init__(self, db_path: Path, *, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.db_path = Path(db_path)
        self.timeout = float(timeout)

    def connect(self) -> sqlite3.Connection:
        return connect(self.db_path, timeout=self.timeout)

    def unit_of_work(self, readonly: bool = False) -> SqliteUnitOfWork:
        return SqliteUnitOfWork(self.db_path, timeout=self.timeout, readonly=readonly)
