from __future__ import annotations

import sqlite3
from contextlib import closing
from typing import Protocol

from bakery.errors import DatastoreError
from bakery.models import ReturnRecord, StaffNotification
from bakery.repositories import SqliteDatastore
from bakery.utils import iso_now

RETURN_PROCESSED = "return_processed"


class Notifier(Protocol):
    def notify(self, notification: StaffNotification) -> None:
        ...


class SqliteNotifier:
    """Drops notifications into the staff inbox (staff_notifications table)."""

    def __init__(self, store: SqliteDatastore):
        self.store = store

    def notify(self, notification: StaffNotification) -> None:
        try:
            with closing(self.store.connect()) as conn:
                conn.execute(
                    """
                    INSERT INTO staff_notifications (ts, type, title, message, related_type, related_id, is_read)
                    VALUES (?, ?, ?, ?, ?, ?, 0)
                    """,
                    (
                        iso_now(),
                        notification.type,
                        notification.title,
                        notification.message,
                        notification.related_type,
                        notification.related_id,
                    ),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise DatastoreError(f"Notification write failed: {e}") from e


def build_return_notification(record: ReturnRecord, *, currency: str = "LKR") -> StaffNotification:
    lines = [
        f"- {line.product_name}: {line.quantity_returned} @ {line.return_percentage}% "
        f"= {currency} {line.value:,.2f} (age {line.age_at_return}d)"
        for line in record.lines
    ]
    message = (
        f"Processed by {record.processed_by}. "
        f"{record.total_batches} batch(es), {record.total_quantity} unit(s), "
        f"total return value {currency} {record.total_value:,.2f}."
    )
    if lines:
        message += "\n" + "\n".join(lines)
    if record.kept_batch_ids:
        message += f"\nKept for tomorrow: {len(record.kept_batch_ids)} batch(es)."

    return StaffNotification(
        type=RETURN_PROCESSED,
        title=f"Return processed ({record.return_date.isoformat()})",
        message=message,
        related_type="return",
        related_id=str(record.return_id) if record.return_id is not None else None,
    )
