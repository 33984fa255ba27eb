from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional

from bakery.errors import ValidationError
from bakery.models import Batch, NewBatch
from bakery.repositories import Datastore
from bakery.services.batch_age import (
    DEFAULT_AGE_THRESHOLDS,
    AgeThresholds,
    calculate_batch_age,
    get_batch_age_category,
)
from bakery.utils import field_of, parse_date, to_decimal

logger = logging.getLogger(__name__)


@dataclass
class CheckInLine:
    product_id: int
    quantity: Any
    original_price: Any = None
    sale_price: Any = None


# -------------------------
# Pure helpers
# -------------------------

def sort_batches_by_age(batches: Optional[Iterable[Any]]) -> list:
    """
    Oldest first (FIFO). Returns a new list; the input is left as is.

    Python's sort is stable, so batches sharing a date keep their input order.
    Entries without a readable `date_added` are skipped.
    """
    if not batches:
        return []

    keyed = []
    for b in batches:
        d = parse_date(field_of(b, "date_added"))
        if d is None:
            logger.warning("Skipping batch without a valid date_added: %r", field_of(b, "batch_id", b))
            continue
        keyed.append((d, b))

    keyed.sort(key=lambda pair: pair[0])
    return [b for _, b in keyed]


def get_total_stock_for_product(batches: Optional[Iterable[Any]]) -> Decimal:
    """Sum of `quantity` over the given batches. Unreadable quantities count as 0."""
    total = Decimal("0")
    if not batches:
        return total
    for b in batches:
        qty = to_decimal(field_of(b, "quantity"))
        if qty is not None:
            total += qty
    return total


def is_valid_batch_quantity(value: Any) -> bool:
    qty = to_decimal(value)
    return qty is not None and qty >= 0


def calculate_total_stock_by_product(batches: Optional[Iterable[Any]]) -> dict[int, Decimal]:
    out: dict[int, Decimal] = {}
    for b in batches or []:
        pid = int(field_of(b, "product_id"))
        qty = to_decimal(field_of(b, "quantity")) or Decimal("0")
        out[pid] = out.get(pid, Decimal("0")) + qty
    return out


# -------------------------
# Datastore operations
# -------------------------

def create_batch(
    store: Datastore,
    *,
    product_id: int,
    quantity: Any,
    date_added: Any,
    original_price: Any = None,
    sale_price: Any = None,
) -> Batch:
    """
    Daily stock check-in: one new active batch. Prices default to the product's
    catalogue prices.
    """
    qty = to_decimal(quantity)
    if qty is None or qty <= 0:
        raise ValidationError("Quantity must be a number > 0.")

    d = parse_date(date_added)
    if d is None:
        raise ValidationError("Date added must be a valid date.")

    with store.unit_of_work() as uow:
        product = uow.products.get(int(product_id))
        if product is None:
            raise ValidationError("Product not found.")

        op = to_decimal(original_price) if original_price is not None else product.original_price
        sp = to_decimal(sale_price) if sale_price is not None else product.sale_price
        if op is None or op < 0:
            raise ValidationError("Original price must be a number >= 0.")
        if sp is None or sp < 0:
            raise ValidationError("Sale price must be a number >= 0.")

        batch = uow.batches.add(
            NewBatch(
                product_id=int(product_id),
                quantity=qty,
                original_price=op,
                sale_price=sp,
                date_added=d,
            )
        )
        uow.commit()

    logger.info("Created batch %s for product %s: qty=%s date=%s", batch.batch_id, product_id, qty, d)
    return batch


def create_batches_from_check_in(store: Datastore, *, lines: list[CheckInLine], date_added: Any) -> list[int]:
    """
    One check-in can add stock for many products; each line with quantity > 0
    becomes its own batch. All lines commit together.
    """
    if not lines:
        raise ValidationError("At least one product line is required.")

    d = parse_date(date_added)
    if d is None:
        raise ValidationError("Date added must be a valid date.")

    for l in lines:
        if not is_valid_batch_quantity(l.quantity):
            raise ValidationError(f"Invalid quantity for product {l.product_id}: {l.quantity!r}")
    wanted = [l for l in lines if to_decimal(l.quantity) > 0]
    if not wanted:
        raise ValidationError("No valid lines found. Enter a quantity > 0 for at least one product.")

    created_ids: list[int] = []
    with store.unit_of_work() as uow:
        products = uow.products.get_many(l.product_id for l in wanted)
        for l in wanted:
            product = products.get(int(l.product_id))
            if product is None:
                raise ValidationError(f"Product {l.product_id} not found.")

            op = to_decimal(l.original_price) if l.original_price is not None else product.original_price
            sp = to_decimal(l.sale_price) if l.sale_price is not None else product.sale_price
            if op is None or op < 0 or sp is None or sp < 0:
                raise ValidationError(f"Prices for {product.name} must be numbers >= 0.")

            batch = uow.batches.add(
                NewBatch(
                    product_id=product.product_id,
                    quantity=to_decimal(l.quantity),
                    original_price=op,
                    sale_price=sp,
                    date_added=d,
                )
            )
            created_ids.append(batch.batch_id)
        uow.commit()

    logger.info("Stock check-in %s created %d batch(es)", d, len(created_ids))
    return created_ids


def get_batches_by_product(store: Datastore, product_id: int) -> list[Batch]:
    with store.unit_of_work(readonly=True) as uow:
        batches = uow.batches.list_active(int(product_id))
    return sort_batches_by_age(batches)


def list_active_batches(
    store: Datastore,
    *,
    now: Any,
    thresholds: AgeThresholds = DEFAULT_AGE_THRESHOLDS,
) -> list[dict]:
    """
    Active batches of every product, oldest first, annotated with product name,
    age in days and age category. Rows feed the inventory and returns screens.
    """
    with store.unit_of_work(readonly=True) as uow:
        batches = uow.batches.list_active()
        products = uow.products.get_many(b.product_id for b in batches)

    out: list[dict] = []
    for b in sort_batches_by_age(batches):
        age = calculate_batch_age(b.date_added, now)
        product = products.get(b.product_id)
        out.append(
            {
                "batch_id": b.batch_id,
                "product_id": b.product_id,
                "product_name": product.name if product else f"#{b.product_id}",
                "category": product.category if product else None,
                "quantity": b.quantity,
                "original_price": b.original_price,
                "sale_price": b.sale_price,
                "default_return_percentage": (
                    product.default_return_percentage if product else Decimal("20")
                ),
                "date_added": b.date_added,
                "age_days": age,
                "age_category": get_batch_age_category(age, thresholds),
            }
        )
    return out
