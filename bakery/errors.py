from __future__ import annotations

from decimal import Decimal


class InventoryError(Exception):
    """Base class for batch inventory failures."""

    kind = "error"


class ValidationError(InventoryError, ValueError):
    kind = "validation"


class InsufficientStockError(InventoryError):
    kind = "insufficient_stock"

    def __init__(self, product_id: int, available: Decimal, needed: Decimal):
        self.product_id = product_id
        self.available = available
        self.needed = needed
        super().__init__(
            f"Insufficient stock for product {product_id}: need {needed}, have {available}."
        )


class ConcurrencyConflict(InventoryError):
    """A batch changed between read and conditional write."""

    kind = "conflict"


class DatastoreError(InventoryError):
    kind = "datastore"
