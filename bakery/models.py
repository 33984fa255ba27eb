from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional

BATCH_ACTIVE = "active"
BATCH_RETURNED = "returned"
BATCH_DEPLETED = "depleted"


@dataclass
class Batch:
    batch_id: int
    product_id: int
    quantity: Decimal
    original_price: Decimal
    sale_price: Decimal
    date_added: date
    status: str = BATCH_ACTIVE
    version: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == BATCH_ACTIVE


@dataclass(frozen=True)
class NewBatch:
    product_id: int
    quantity: Decimal
    original_price: Decimal
    sale_price: Decimal
    date_added: date


@dataclass(frozen=True)
class Product:
    product_id: int
    name: str
    category: Optional[str]
    original_price: Decimal
    sale_price: Decimal
    default_return_percentage: Decimal
    is_active: bool = True


@dataclass
class ReturnLineInput:
    """One batch selected on the end-of-day returns screen. Values may be numeric strings."""

    batch_id: Any
    quantity: Any
    original_price: Any
    return_percentage: Any
    sale_price: Any = None


@dataclass(frozen=True)
class ReturnLine:
    batch_id: int
    product_id: int
    product_name: str
    quantity_returned: Decimal
    return_percentage: Decimal
    return_value_per_unit: Decimal
    value: Decimal
    original_price: Decimal
    sale_price: Decimal
    date_batch_added: date
    age_at_return: int


@dataclass(frozen=True)
class ReturnRecord:
    processed_by: str
    return_date: date
    lines: tuple[ReturnLine, ...]
    total_quantity: Decimal
    total_value: Decimal
    kept_batch_ids: tuple[int, ...]
    created_at: str
    return_id: Optional[int] = None
    notification_sent: bool = False
    idempotency_key: Optional[str] = None

    @property
    def total_batches(self) -> int:
        return len(self.lines)


@dataclass(frozen=True)
class AuditEvent:
    action: str
    target_type: str
    target_id: Optional[str]
    actor_id: Optional[str]
    status: str = "success"
    details: dict = field(default_factory=dict)


@dataclass(frozen=True)
class StaffNotification:
    type: str
    title: str
    message: str
    related_type: Optional[str] = None
    related_id: Optional[str] = None


@dataclass
class DepletionResult:
    success: bool
    error: Optional[str] = None
    error_kind: Optional[str] = None
    batches_updated: int = 0
    batches_depleted: int = 0
    allocations: list[tuple[int, Decimal]] = field(default_factory=list)


@dataclass
class ReturnResult:
    success: bool
    total_value: Decimal = Decimal("0")
    total_quantity: Decimal = Decimal("0")
    return_id: Optional[int] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    duplicate: bool = False
    warnings: list[str] = field(default_factory=list)
    record: Optional[ReturnRecord] = None


@dataclass
class UndoResult:
    success: bool
    batches_recreated: int = 0
    error: Optional[str] = None
    error_kind: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
