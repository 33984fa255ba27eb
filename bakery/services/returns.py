"""
End-of-day returns: selected batches go back to the bakery (or are marked
down) at a percentage of their original price, the rest are kept for tomorrow.

The batch updates, the return record and its lines commit in one transaction.
Audit and staff notification run only after that commit and are best-effort:
their failures come back as warnings, never as a failed return.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

from bakery.errors import (
    ConcurrencyConflict,
    DatastoreError,
    InventoryError,
    ValidationError,
)
from bakery.models import (
    BATCH_ACTIVE,
    BATCH_RETURNED,
    AuditEvent,
    NewBatch,
    ReturnLine,
    ReturnLineInput,
    ReturnRecord,
    ReturnResult,
    UndoResult,
)
from bakery.repositories import Datastore
from bakery.services.audit import RETURN_PROCESSED, RETURN_UNDONE, AuditLog
from bakery.services.batch_age import calculate_batch_age
from bakery.services.notifications import Notifier, build_return_notification
from bakery.utils import parse_date, parse_datetime, to_decimal, to_int_id

logger = logging.getLogger(__name__)

NO_BATCHES_SELECTED = "No batches selected for return."
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class _CheckedLine:
    batch_id: int
    quantity: Decimal
    original_price: Decimal
    return_percentage: Decimal
    sale_price: Optional[Decimal]


def compute_return_value(original_price: Decimal, return_percentage: Decimal, quantity: Decimal) -> tuple[Decimal, Decimal]:
    """(value per unit, line value) for a returned batch."""
    per_unit = original_price * (return_percentage / HUNDRED)
    return per_unit, per_unit * quantity


def _pick(raw: Any, *names: str) -> Any:
    # Mappings may come from the UI in either snake_case or camelCase.
    if isinstance(raw, Mapping):
        for n in names:
            if n in raw:
                return raw[n]
        return None
    return getattr(raw, names[0], None)


def _check_line(raw: Any) -> _CheckedLine:
    if not isinstance(raw, (Mapping, ReturnLineInput)):
        raise ValidationError(f"Unsupported return line: {raw!r}")

    raw_id = _pick(raw, "batch_id", "batchId")
    batch_id = to_int_id(raw_id)
    if batch_id is None:
        raise ValidationError(f"Invalid batch id: {raw_id!r}")

    quantity = to_decimal(_pick(raw, "quantity"))
    if quantity is None or quantity <= 0:
        raise ValidationError(f"Batch {batch_id}: quantity must be a number > 0.")

    original_price = to_decimal(_pick(raw, "original_price", "originalPrice"))
    if original_price is None or original_price < 0:
        raise ValidationError(f"Batch {batch_id}: original price must be a number >= 0.")

    pct = to_decimal(_pick(raw, "return_percentage", "returnPercentage"))
    if pct is None or pct < 0 or pct > HUNDRED:
        raise ValidationError(f"Batch {batch_id}: return percentage must be between 0 and 100.")

    raw_sale = _pick(raw, "sale_price", "salePrice")
    sale_price = None
    if raw_sale is not None:
        sale_price = to_decimal(raw_sale)
        if sale_price is None or sale_price < 0:
            raise ValidationError(f"Batch {batch_id}: sale price must be a number >= 0.")

    return _CheckedLine(
        batch_id=batch_id,
        quantity=quantity,
        original_price=original_price,
        return_percentage=pct,
        sale_price=sale_price,
    )


def validate_return_request(
    batches_to_return: Optional[Iterable[Any]],
    batches_to_keep: Optional[Iterable[Any]] = None,
) -> tuple[list[_CheckedLine], tuple[int, ...]]:
    if not batches_to_return:
        raise ValidationError(NO_BATCHES_SELECTED)

    lines = [_check_line(raw) for raw in batches_to_return]
    if not lines:
        raise ValidationError(NO_BATCHES_SELECTED)

    seen: set[int] = set()
    for line in lines:
        if line.batch_id in seen:
            raise ValidationError(f"Batch {line.batch_id} is selected more than once.")
        seen.add(line.batch_id)

    kept: list[int] = []
    for k in batches_to_keep or ():
        kept_id = to_int_id(k)
        if kept_id is None:
            raise ValidationError(f"Invalid batch id to keep: {k!r}")
        kept.append(kept_id)

    both = seen.intersection(kept)
    if both:
        raise ValidationError(f"Batches cannot be both returned and kept: {sorted(both)}")

    return lines, tuple(dict.fromkeys(kept))


def _commit_return(
    store: Datastore,
    *,
    actor_id: str,
    lines: list[_CheckedLine],
    kept: tuple[int, ...],
    now: datetime,
    idempotency_key: Optional[str],
) -> tuple[ReturnRecord, bool]:
    with store.unit_of_work() as uow:
        if idempotency_key:
            existing = uow.returns.find_by_idempotency_key(idempotency_key)
            if existing is not None:
                return existing, True

        batches = uow.batches.get_many([l.batch_id for l in lines] + list(kept))
        missing_kept = [k for k in kept if k not in batches]
        if missing_kept:
            raise ValidationError(f"Batches to keep not found: {missing_kept}")

        products = uow.products.get_many(b.product_id for b in batches.values())

        out_lines: list[ReturnLine] = []
        for line in lines:
            b = batches.get(line.batch_id)
            if b is None:
                raise ValidationError(f"Batch {line.batch_id} not found.")
            if b.status != BATCH_ACTIVE:
                raise ValidationError(f"Batch {line.batch_id} is not active (status: {b.status}).")
            if line.quantity > b.quantity:
                raise ValidationError(
                    f"Batch {line.batch_id}: return quantity {line.quantity} exceeds stock on hand {b.quantity}."
                )

            left = b.quantity - line.quantity
            status = BATCH_RETURNED if left == 0 else BATCH_ACTIVE
            if not uow.batches.update_quantity(
                b.batch_id, quantity=left, status=status, expected_version=b.version
            ):
                raise ConcurrencyConflict(f"Batch {b.batch_id} changed while processing the return.")

            per_unit, value = compute_return_value(line.original_price, line.return_percentage, line.quantity)
            product = products.get(b.product_id)
            out_lines.append(
                ReturnLine(
                    batch_id=b.batch_id,
                    product_id=b.product_id,
                    product_name=product.name if product else f"#{b.product_id}",
                    quantity_returned=line.quantity,
                    return_percentage=line.return_percentage,
                    return_value_per_unit=per_unit,
                    value=value,
                    original_price=line.original_price,
                    sale_price=line.sale_price if line.sale_price is not None else b.sale_price,
                    date_batch_added=b.date_added,
                    age_at_return=calculate_batch_age(b.date_added, now),
                )
            )

        record = ReturnRecord(
            processed_by=str(actor_id),
            return_date=now.date(),
            lines=tuple(out_lines),
            total_quantity=sum((l.quantity_returned for l in out_lines), Decimal("0")),
            total_value=sum((l.value for l in out_lines), Decimal("0")),
            kept_batch_ids=kept,
            created_at=now.replace(microsecond=0).isoformat(),
            idempotency_key=idempotency_key,
        )
        return_id = uow.returns.add(record)
        uow.commit()

    return replace(record, return_id=return_id), False


def _find_by_key(store: Datastore, key: str) -> Optional[ReturnRecord]:
    with store.unit_of_work(readonly=True) as uow:
        return uow.returns.find_by_idempotency_key(key)


def _best_effort(label: str, fn: Callable[[], None], warnings: list[str]) -> bool:
    try:
        fn()
        return True
    except Exception as e:
        msg = f"{label} failed: {e}"
        logger.warning(msg)
        warnings.append(msg)
        return False


def _result_from_record(record: ReturnRecord, **kwargs) -> ReturnResult:
    return ReturnResult(
        success=True,
        total_value=record.total_value,
        total_quantity=record.total_quantity,
        return_id=record.return_id,
        record=record,
        **kwargs,
    )


def process_return(
    store: Datastore,
    actor_id: str,
    batches_to_return: Optional[Iterable[Any]],
    batches_to_keep: Optional[Iterable[Any]] = (),
    *,
    audit: Optional[AuditLog] = None,
    notifier: Optional[Notifier] = None,
    now: Any = None,
    idempotency_key: Optional[str] = None,
    currency: str = "LKR",
) -> ReturnResult:
    """
    Return (or mark down) the selected batches and record the outcome.

    Each line of `batches_to_return` is a ReturnLineInput or a mapping with
    batch_id, quantity, original_price and return_percentage (0-100). Line value
    is original_price * return_percentage / 100 * quantity. Returning a batch's
    whole remaining quantity marks it `returned`; a smaller quantity leaves it
    active with the rest. `batches_to_keep` ids are left untouched.

    A repeated call with the same `idempotency_key` writes nothing and returns
    the stored outcome with duplicate=True.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    else:
        parsed = parse_datetime(now)
        if parsed is None:
            return ReturnResult(success=False, error=f"Invalid processing time: {now!r}", error_kind="validation")
        now = parsed

    if not actor_id:
        return ReturnResult(success=False, error="Actor is required to process a return.", error_kind="validation")

    try:
        lines, kept = validate_return_request(batches_to_return, batches_to_keep)
    except ValidationError as e:
        return ReturnResult(success=False, error=str(e), error_kind=e.kind)

    try:
        record, duplicate = _commit_return(
            store,
            actor_id=str(actor_id),
            lines=lines,
            kept=kept,
            now=now,
            idempotency_key=idempotency_key,
        )
    except DatastoreError as e:
        # A concurrent submission with the same key loses on the UNIQUE index.
        if idempotency_key:
            try:
                existing = _find_by_key(store, idempotency_key)
            except DatastoreError:
                existing = None
            if existing is not None:
                logger.info("Return with key %s already recorded as #%s", idempotency_key, existing.return_id)
                return _result_from_record(existing, duplicate=True)
        logger.error("Return processing failed: %s", e)
        return ReturnResult(success=False, error=str(e), error_kind=e.kind)
    except InventoryError as e:
        logger.info("Return rejected: %s", e)
        return ReturnResult(success=False, error=str(e), error_kind=e.kind)

    if duplicate:
        logger.info("Return with key %s already recorded as #%s", idempotency_key, record.return_id)
        return _result_from_record(record, duplicate=True)

    logger.info(
        "Return #%s processed by %s: %d batch(es), qty=%s, value=%s",
        record.return_id, actor_id, record.total_batches, record.total_quantity, record.total_value,
    )

    warnings: list[str] = []
    if audit is not None:
        _best_effort(
            "Audit log",
            lambda: audit.log_event(
                AuditEvent(
                    action=RETURN_PROCESSED,
                    target_type="return",
                    target_id=str(record.return_id),
                    actor_id=str(actor_id),
                    status="success",
                    details={
                        "total_value": str(record.total_value),
                        "total_quantity": str(record.total_quantity),
                        "total_batches": record.total_batches,
                        "returned_batch_ids": [l.batch_id for l in record.lines],
                        "kept_batch_ids": list(record.kept_batch_ids),
                    },
                )
            ),
            warnings,
        )

    if notifier is not None:
        sent = _best_effort(
            "Staff notification",
            lambda: notifier.notify(build_return_notification(record, currency=currency)),
            warnings,
        )
        if sent and _best_effort("Notification flag", lambda: _mark_notification_sent(store, record.return_id), warnings):
            record = replace(record, notification_sent=True)

    return _result_from_record(record, warnings=warnings)


def _mark_notification_sent(store: Datastore, return_id: int) -> None:
    with store.unit_of_work() as uow:
        uow.returns.mark_notification_sent(return_id)
        uow.commit()


# -------------------------
# Returns log
# -------------------------

def fetch_returns_by_date_range(store: Datastore, start: Any, end: Any) -> list[ReturnRecord]:
    s, e = parse_date(start), parse_date(end)
    if s is None or e is None:
        raise ValidationError("Start and end must be valid dates.")
    if s > e:
        raise ValidationError("Start date must not be after end date.")
    with store.unit_of_work(readonly=True) as uow:
        return uow.returns.list_by_date_range(s, e)


def fetch_return_details(store: Datastore, return_id: int) -> Optional[ReturnRecord]:
    with store.unit_of_work(readonly=True) as uow:
        return uow.returns.get(int(return_id))


def undo_return(
    store: Datastore,
    return_id: int,
    actor_id: str,
    *,
    audit: Optional[AuditLog] = None,
) -> UndoResult:
    """
    Reverse a return: each returned line comes back as a new active batch with
    the original date and prices (so its age carries on), and the return record
    is deleted. Existing batches are never topped up.
    """
    try:
        with store.unit_of_work() as uow:
            record = uow.returns.get(int(return_id))
            if record is None:
                raise ValidationError(f"Return {return_id} not found.")
            if not record.lines:
                raise ValidationError("No items found for this return.")

            for line in record.lines:
                if line.product_id is None:
                    raise ValidationError(
                        f"Cannot restore {line.product_name}: the product no longer exists."
                    )
                uow.batches.add(
                    NewBatch(
                        product_id=line.product_id,
                        quantity=line.quantity_returned,
                        original_price=line.original_price,
                        sale_price=line.sale_price,
                        date_added=line.date_batch_added,
                    )
                )
            uow.returns.delete(record.return_id)
            uow.commit()
    except InventoryError as e:
        logger.warning("Undo of return %s failed: %s", return_id, e)
        return UndoResult(success=False, error=str(e), error_kind=e.kind)

    logger.info("Return #%s undone by %s: %d batch(es) recreated", return_id, actor_id, len(record.lines))

    warnings: list[str] = []
    if audit is not None:
        _best_effort(
            "Audit log",
            lambda: audit.log_event(
                AuditEvent(
                    action=RETURN_UNDONE,
                    target_type="return",
                    target_id=str(return_id),
                    actor_id=str(actor_id),
                    status="success",
                    details={
                        "batches_recreated": len(record.lines),
                        "total_value": str(record.total_value),
                    },
                )
            ),
            warnings,
        )

    return UndoResult(success=True, batches_recreated=len(record.lines), warnings=warnings)
