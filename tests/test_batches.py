"""
Tests for FIFO ordering, stock totals, quantity validation and batch intake.
"""
import random
from datetime import date, datetime
from decimal import Decimal

import pytest

from bakery.errors import ValidationError
from bakery.models import BATCH_ACTIVE, Batch
from bakery.services.batches import (
    CheckInLine,
    calculate_total_stock_by_product,
    create_batch,
    create_batches_from_check_in,
    get_batches_by_product,
    get_total_stock_for_product,
    is_valid_batch_quantity,
    list_active_batches,
    sort_batches_by_age,
)


def _batch(batch_id, date_added, quantity="10", product_id=1):
    return Batch(
        batch_id=batch_id,
        product_id=product_id,
        quantity=Decimal(quantity),
        original_price=Decimal("100"),
        sale_price=Decimal("150"),
        date_added=date_added,
    )


class TestSortBatchesByAge:

    def test_oldest_first(self):
        batches = [
            _batch(1, date(2025, 1, 25)),
            _batch(2, date(2025, 1, 20)),
            _batch(3, date(2025, 1, 22)),
        ]
        assert [b.batch_id for b in sort_batches_by_age(batches)] == [2, 3, 1]

    def test_does_not_mutate_input(self):
        batches = [_batch(1, date(2025, 1, 25)), _batch(2, date(2025, 1, 20))]
        before = list(batches)
        out = sort_batches_by_age(batches)
        assert batches == before
        assert out is not batches

    def test_idempotent(self):
        batches = [_batch(i, date(2025, 1, 1 + (i * 7) % 13)) for i in range(1, 12)]
        once = sort_batches_by_age(batches)
        assert sort_batches_by_age(once) == once

    def test_stable_for_equal_dates(self):
        batches = [_batch(i, date(2025, 1, 20)) for i in (5, 3, 9)]
        assert [b.batch_id for b in sort_batches_by_age(batches)] == [5, 3, 9]

    def test_empty_and_none(self):
        assert sort_batches_by_age([]) == []
        assert sort_batches_by_age(None) == []

    def test_mappings_and_iso_strings(self):
        rows = [
            {"batch_id": "a", "date_added": "2025-01-25T10:00:00Z"},
            {"batch_id": "b", "date_added": "2025-01-20"},
        ]
        assert [r["batch_id"] for r in sort_batches_by_age(rows)] == ["b", "a"]

    def test_skips_malformed_dates(self, caplog):
        rows = [
            {"batch_id": 1, "date_added": "2025-01-25"},
            {"batch_id": 2, "date_added": None},
            {"batch_id": 3, "date_added": "garbage"},
            {"batch_id": 4, "date_added": "2025-01-20"},
        ]
        out = sort_batches_by_age(rows)
        assert [r["batch_id"] for r in out] == [4, 1]
        assert "Skipping batch" in caplog.text


class TestTotalStock:

    def test_sums_quantities(self):
        batches = [{"quantity": 10}, {"quantity": "5"}, {"quantity": 10.5}]
        assert get_total_stock_for_product(batches) == Decimal("25.5")

    def test_empty_is_zero(self):
        assert get_total_stock_for_product([]) == 0
        assert get_total_stock_for_product(None) == 0

    def test_order_independent(self):
        batches = [{"quantity": q} for q in (1, 2.25, 3, 40, 0.1, "7")]
        expected = get_total_stock_for_product(batches)
        rng = random.Random(3)
        for _ in range(5):
            shuffled = list(batches)
            rng.shuffle(shuffled)
            assert get_total_stock_for_product(shuffled) == expected

    def test_unreadable_quantity_counts_as_zero(self):
        assert get_total_stock_for_product([{"quantity": "abc"}, {"quantity": 4}, {}]) == 4

    def test_totals_by_product(self):
        batches = [
            _batch(1, date(2025, 1, 20), "10", product_id=1),
            _batch(2, date(2025, 1, 21), "5", product_id=2),
            _batch(3, date(2025, 1, 22), "2.5", product_id=1),
        ]
        assert calculate_total_stock_by_product(batches) == {1: Decimal("12.5"), 2: Decimal("5")}


@pytest.mark.parametrize(
    "value, expected",
    [
        (0, True),
        (10, True),
        (10.5, True),
        ("7", True),
        (-1, False),
        ("abc", False),
        (None, False),
        (True, False),
        (float("nan"), False),
        (float("inf"), False),
    ],
)
def test_is_valid_batch_quantity(value, expected):
    assert is_valid_batch_quantity(value) is expected


class TestCreateBatch:

    def test_prices_default_from_product(self, store, products):
        b = create_batch(store, product_id=products["Chocolate Cake"], quantity=12, date_added="2025-01-20")
        assert b.quantity == 12
        assert b.original_price == 100
        assert b.sale_price == 150
        assert b.status == BATCH_ACTIVE
        assert b.date_added == date(2025, 1, 20)

    def test_price_override(self, store, products):
        b = create_batch(
            store,
            product_id=products["Chocolate Cake"],
            quantity="3",
            date_added=date(2025, 1, 20),
            original_price="90",
        )
        assert b.original_price == 90
        assert b.sale_price == 150

    @pytest.mark.parametrize("qty", [0, -2, "x", None])
    def test_rejects_bad_quantity(self, store, products, qty):
        with pytest.raises(ValidationError):
            create_batch(store, product_id=products["Chocolate Cake"], quantity=qty, date_added="2025-01-20")

    def test_unknown_product(self, store, products):
        with pytest.raises(ValidationError, match="Product not found"):
            create_batch(store, product_id=999, quantity=1, date_added="2025-01-20")


class TestCheckIn:

    def test_one_batch_per_non_zero_line(self, store, products):
        ids = create_batches_from_check_in(
            store,
            lines=[
                CheckInLine(product_id=products["Chocolate Cake"], quantity=10),
                CheckInLine(product_id=products["Sandwich Bread"], quantity=0),
                CheckInLine(product_id=products["Sandwich Bread"], quantity=20, sale_price=85),
            ],
            date_added=date(2025, 1, 20),
        )
        assert len(ids) == 2

        bread = get_batches_by_product(store, products["Sandwich Bread"])
        assert [b.quantity for b in bread] == [20]
        assert bread[0].sale_price == 85

    def test_all_zero_rejected(self, store, products):
        with pytest.raises(ValidationError, match="No valid lines"):
            create_batches_from_check_in(
                store,
                lines=[CheckInLine(product_id=products["Chocolate Cake"], quantity=0)],
                date_added=date(2025, 1, 20),
            )

    def test_negative_line_rejects_whole_check_in(self, store, products):
        with pytest.raises(ValidationError):
            create_batches_from_check_in(
                store,
                lines=[
                    CheckInLine(product_id=products["Chocolate Cake"], quantity=5),
                    CheckInLine(product_id=products["Sandwich Bread"], quantity=-1),
                ],
                date_added=date(2025, 1, 20),
            )
        assert get_batches_by_product(store, products["Chocolate Cake"]) == []

    def test_unknown_product_rolls_back(self, store, products):
        with pytest.raises(ValidationError):
            create_batches_from_check_in(
                store,
                lines=[
                    CheckInLine(product_id=products["Chocolate Cake"], quantity=5),
                    CheckInLine(product_id=999, quantity=1),
                ],
                date_added=date(2025, 1, 20),
            )
        assert get_batches_by_product(store, products["Chocolate Cake"]) == []


class TestActiveBatchQueries:

    def test_get_batches_by_product_oldest_first(self, store, products, add_batch):
        cake = products["Chocolate Cake"]
        add_batch(cake, 5, date(2025, 1, 25))
        add_batch(cake, 7, date(2025, 1, 20))
        add_batch(products["Sandwich Bread"], 9, date(2025, 1, 19))

        batches = get_batches_by_product(store, cake)
        assert [b.date_added for b in batches] == [date(2025, 1, 20), date(2025, 1, 25)]

    def test_list_active_batches_annotates_age(self, store, products, add_batch):
        add_batch(products["Chocolate Cake"], 5, date(2025, 1, 25))
        add_batch(products["Sandwich Bread"], 9, date(2025, 1, 17))

        rows = list_active_batches(store, now=datetime(2025, 1, 25, 20, 0))
        assert [r["product_name"] for r in rows] == ["Sandwich Bread", "Chocolate Cake"]
        assert rows[0]["age_days"] == 8
        assert rows[0]["age_category"] == "old"
        assert rows[1]["age_days"] == 0
        assert rows[1]["age_category"] == "fresh"
        assert rows[0]["default_return_percentage"] == 100
