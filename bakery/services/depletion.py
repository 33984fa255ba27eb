from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from bakery.errors import ConcurrencyConflict, DatastoreError, InsufficientStockError
from bakery.models import BATCH_ACTIVE, BATCH_DEPLETED, Batch, DepletionResult
from bakery.repositories import Datastore
from bakery.services.batches import get_total_stock_for_product, sort_batches_by_age
from bakery.utils import to_decimal, to_int_id

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


def plan_fifo_deduction(batches: list[Batch], quantity_needed: Decimal) -> list[tuple[Batch, Decimal, Decimal]]:
    """
    (batch, quantity taken, quantity left) for each batch touched, oldest first.
    Assumes the caller already checked that the batches hold enough stock.
    """
    remaining = quantity_needed
    plan: list[tuple[Batch, Decimal, Decimal]] = []

    for b in sort_batches_by_age(batches):
        if remaining <= 0:
            break
        if b.quantity <= 0:
            continue

        take = min(remaining, b.quantity)
        plan.append((b, take, b.quantity - take))
        remaining -= take

    return plan


def _deduct_once(store: Datastore, product_id: int, needed: Decimal) -> DepletionResult:
    with store.unit_of_work() as uow:
        batches = uow.batches.list_active(product_id)
        available = get_total_stock_for_product(batches)
        if available < needed:
            raise InsufficientStockError(product_id, available, needed)

        plan = plan_fifo_deduction(batches, needed)
        depleted = 0
        for b, _take, left in plan:
            status = BATCH_DEPLETED if left == 0 else BATCH_ACTIVE
            if not uow.batches.update_quantity(
                b.batch_id, quantity=left, status=status, expected_version=b.version
            ):
                raise ConcurrencyConflict(f"Batch {b.batch_id} changed during deduction.")
            if status == BATCH_DEPLETED:
                depleted += 1

        uow.commit()

    return DepletionResult(
        success=True,
        batches_updated=len(plan) - depleted,
        batches_depleted=depleted,
        allocations=[(b.batch_id, take) for b, take, _ in plan],
    )


def deduct_from_oldest_batches(
    store: Datastore,
    product_id: int,
    quantity_needed: Any,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> DepletionResult:
    """
    Sell `quantity_needed` of a product from its oldest active batches first.

    All-or-nothing: when the product's active batches can't cover the quantity,
    nothing is written and the result carries error_kind="insufficient_stock".
    A batch that changed under us rolls the whole deduction back and it is
    retried from a fresh read, up to `max_attempts` times.
    """
    pid = to_int_id(product_id)
    if pid is None:
        return DepletionResult(success=False, error="Invalid product id.", error_kind="validation")

    needed = to_decimal(quantity_needed)
    if needed is None or needed <= 0:
        return DepletionResult(
            success=False,
            error="Quantity to deduct must be a number > 0.",
            error_kind="validation",
        )

    last_conflict = None
    for attempt in range(1, max(1, int(max_attempts)) + 1):
        try:
            result = _deduct_once(store, pid, needed)
        except ConcurrencyConflict as e:
            last_conflict = e
            logger.warning(
                "Deduction for product %s conflicted (attempt %d/%d): %s",
                product_id, attempt, max_attempts, e,
            )
            continue
        except InsufficientStockError as e:
            logger.info("Deduction rejected: %s", e)
            return DepletionResult(success=False, error=str(e), error_kind=e.kind)
        except DatastoreError as e:
            logger.error("Deduction for product %s failed: %s", product_id, e)
            return DepletionResult(success=False, error=str(e), error_kind=e.kind)

        logger.info(
            "Deducted %s from product %s: %d batch(es) updated, %d depleted",
            needed, product_id, result.batches_updated, result.batches_depleted,
        )
        return result

    return DepletionResult(
        success=False,
        error=f"Stock changed while selling; please retry. ({last_conflict})",
        error_kind=ConcurrencyConflict.kind,
    )
