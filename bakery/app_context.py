from __future__ import annotations

from dataclasses import dataclass

import streamlit as st

from bakery.config import Settings, get_settings
from bakery.db import ensure_schema, get_conn
from bakery.logging_config import setup_logging
from bakery.repositories import SqliteDatastore
from bakery.services.audit import SqliteAuditLog
from bakery.services.notifications import SqliteNotifier


@dataclass(frozen=True)
class AppContext:
    """Everything a page needs to call the services, built once per data directory."""

    settings: Settings
    store: SqliteDatastore
    audit: SqliteAuditLog
    notifier: SqliteNotifier


@st.cache_resource
def get_app_context() -> AppContext:
    settings = get_settings()
    setup_logging(settings.log_dir)

    conn = get_conn(settings.db_path)
    ensure_schema(conn)

    store = SqliteDatastore(settings.db_path, timeout=settings.db_timeout_seconds)
    return AppContext(
        settings=settings,
        store=store,
        audit=SqliteAuditLog(store),
        notifier=SqliteNotifier(store),
    )
