from __future__ import annotations

import json
import sqlite3
from contextlib import closing
from typing import Protocol

from bakery.errors import DatastoreError, ValidationError
from bakery.models import AuditEvent
from bakery.repositories import SqliteDatastore
from bakery.utils import iso_now

RETURN_PROCESSED = "return_processed"
RETURN_UNDONE = "return_undone"

VALID_ACTIONS = {RETURN_PROCESSED, RETURN_UNDONE}
VALID_STATUSES = {"success", "failure"}


class AuditLog(Protocol):
    def log_event(self, event: AuditEvent) -> None:
        ...


def validate_event(event: AuditEvent) -> None:
    if event.action not in VALID_ACTIONS:
        raise ValidationError(f"Invalid audit action: {event.action}")
    if event.status not in VALID_STATUSES:
        raise ValidationError(f"Invalid audit status: {event.status}")


class SqliteAuditLog:
    """Writes audit events to the audit_logs table on a short-lived connection."""

    def __init__(self, store: SqliteDatastore):
        self.store = store

    def log_event(self, event: AuditEvent) -> None:
        validate_event(event)
        try:
            with closing(self.store.connect()) as conn:
                conn.execute(
                    """
                    INSERT INTO audit_logs (ts, action, target_type, target_id, actor_id, status, details)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        iso_now(),
                        event.action,
                        event.target_type,
                        event.target_id,
                        event.actor_id,
                        event.status,
                        json.dumps(event.details, default=str) if event.details else None,
                    ),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise DatastoreError(f"Audit log write failed: {e}") from e
