from __future__ import annotations

import random
import sqlite3
from datetime import date, timedelta
from typing import Optional

from bakery.db import ensure_schema, q, x
from bakery.repositories import SqliteDatastore
from bakery.services.batches import create_batch
from bakery.services.depletion import deduct_from_oldest_batches

# (name, category, original_price, sale_price, default_return_percentage)
DEFAULT_PRODUCTS = [
    ("Chocolate Cake", "Cakes", 1200.0, 1500.0, 20),
    ("Butter Cake", "Cakes", 800.0, 1000.0, 20),
    ("Fish Bun", "Short Eats", 80.0, 120.0, 100),
    ("Sandwich Bread", "Bread", 150.0, 200.0, 100),
    ("Tea Bun", "Buns", 60.0, 90.0, 20),
]


def upsert_reference_data(conn: sqlite3.Connection) -> None:
    ensure_schema(conn)

    for name, category, op, sp, pct in DEFAULT_PRODUCTS:
        x(
            conn,
            """
            INSERT OR IGNORE INTO products (name, category, original_price, sale_price, default_return_percentage)
            VALUES (?, ?, ?, ?, ?)
            """,
            (name, category, float(op), float(sp), float(pct)),
        )


def wipe_all(conn: sqlite3.Connection) -> None:
    # Keep schema, delete data (order matters for FKs).
    for t in ["return_items", "returns", "inventory_batches", "audit_logs", "staff_notifications", "products"]:
        conn.execute(f"DELETE FROM {t};")
    conn.commit()


def load_demo_data(store: SqliteDatastore, conn: sqlite3.Connection, *, today: Optional[date] = None, seed: int = 7) -> None:
    rng = random.Random(seed)
    today = today or date.today()
    upsert_reference_data(conn)

    products = q(conn, "SELECT * FROM products ORDER BY id")

    # A spread of ages so every freshness category shows up
    for offset in (9, 5, 3, 1, 0):
        day = today - timedelta(days=offset)
        for p in products:
            if rng.random() < 0.3:
                continue
            create_batch(
                store,
                product_id=int(p["id"]),
                quantity=rng.randint(4, 30),
                date_added=day,
            )

    # Some FIFO sales against the oldest stock
    for p in products:
        deduct_from_oldest_batches(store, int(p["id"]), rng.randint(1, 12))
