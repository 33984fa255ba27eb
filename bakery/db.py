from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Iterable

import streamlit as st

from bakery.schema import SCHEMA_SQL

DEFAULT_TIMEOUT_SECONDS = 5.0


def connect(db_path: Path, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> sqlite3.Connection:
    # timeout bounds how long a writer waits on another writer's lock
    conn = sqlite3.connect(str(db_path), timeout=float(timeout), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")
    return conn


@st.cache_resource
def get_conn(db_path: Path) -> sqlite3.Connection:
    return connect(db_path)


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    rows = conn.execute(f"PRAGMA table_info({table});").fetchall()
    cols = [r["name"] for r in rows]
    return column in cols


def ensure_schema(conn: sqlite3.Connection) -> None:
    # Create base schema (for new installs)
    conn.executescript(SCHEMA_SQL)

    # ---- migrations for existing installs ----
    # Optimistic concurrency counter on batches
    if not _column_exists(conn, "inventory_batches", "version"):
        conn.execute("ALTER TABLE inventory_batches ADD COLUMN version INTEGER NOT NULL DEFAULT 0;")

    # Kept-for-tomorrow batch ids recorded with each return
    if not _column_exists(conn, "returns", "kept_batch_ids"):
        conn.execute("ALTER TABLE returns ADD COLUMN kept_batch_ids TEXT NOT NULL DEFAULT '[]';")

    # SQLite can't ADD a UNIQUE column; enforce through an index instead
    if not _column_exists(conn, "returns", "idempotency_key"):
        conn.execute("ALTER TABLE returns ADD COLUMN idempotency_key TEXT;")
        conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_returns_idempotency ON returns(idempotency_key);"
        )

    conn.commit()


def q(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
    cur = conn.execute(sql, tuple(params))
    rows = cur.fetchall()
    cur.close()
    return rows


def x(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> int:
    cur = conn.execute(sql, tuple(params))
    conn.commit()
    last = cur.lastrowid
    cur.close()
    return int(last or 0)
