"""
Tests for order pricing arithmetic (ledger_kernel/domain/calculations.py).

Covers:
- Line totals, subtotal, tax and discount with HALF_UP rounding
- Validation of items, tax rate, discount and positive amounts
- Balance re-basing helpers
"""

from decimal import Decimal

import pytest

from ledger_kernel.domain.calculations import (
    MAX_DESCRIPTION_LENGTH,
    amount_received,
    compute_totals,
    parse_discount,
    parse_positive_amount,
    parse_tax_rate,
    price_item,
    rebased_balance,
)
from ledger_kernel.domain.dtos import OrderItemSpec
from ledger_kernel.exceptions import (
    EmptyOrderItemsError,
    InvalidAmountError,
    InvalidOrderItemError,
    InvalidTaxRateError,
    NegativeTotalError,
)


class TestComputeTotals:

    def test_single_item_no_tax(self):
        totals = compute_totals([OrderItemSpec("Corte", 1, "100000")])

        assert totals.subtotal == Decimal("100000.00")
        assert totals.tax_amount == Decimal("0.00")
        assert totals.discount == Decimal("0.00")
        assert totals.total == Decimal("100000.00")
        assert len(totals.items) == 1

    def test_tax_and_discount(self):
        """total = subtotal + tax - discount."""
        items = [
            OrderItemSpec("Lona", 2, "15000"),
            OrderItemSpec("Instalacion", 1, "20000"),
        ]
        totals = compute_totals(items, tax_rate="0.19", discount="5000")

        assert totals.subtotal == Decimal("50000.00")
        assert totals.tax_rate == Decimal("0.1900")
        assert totals.tax_amount == Decimal("9500.00")
        assert totals.total == Decimal("54500.00")

    def test_line_total_rounds_half_up(self):
        totals = compute_totals([OrderItemSpec("Vinilo", "0.5", "0.25")])

        # 0.125 -> 0.13
        assert totals.items[0].line_total == Decimal("0.13")

    def test_tax_rounds_half_up(self):
        totals = compute_totals([OrderItemSpec("Item", 1, "0.50")], tax_rate="0.05")

        # 0.025 -> 0.03
        assert totals.tax_amount == Decimal("0.03")

    def test_sum_of_rounded_lines(self):
        """Rounding happens per line, never on the sum."""
        items = [OrderItemSpec("A", "0.5", "0.25"), OrderItemSpec("B", "0.5", "0.25")]
        totals = compute_totals(items)

        assert totals.subtotal == Decimal("0.26")

    def test_zero_price_item_allowed(self):
        totals = compute_totals([OrderItemSpec("Cortesia", 1, 0)])

        assert totals.total == Decimal("0.00")

    def test_empty_items_rejected(self):
        with pytest.raises(EmptyOrderItemsError):
            compute_totals([])

    def test_discount_larger_than_total_rejected(self):
        with pytest.raises(NegativeTotalError):
            compute_totals([OrderItemSpec("A", 1, "1000")], discount="1000.01")

    def test_discount_equal_to_total_gives_zero(self):
        totals = compute_totals([OrderItemSpec("A", 1, "1000")], discount="1000")

        assert totals.total == Decimal("0.00")

    def test_float_price_rejected(self):
        with pytest.raises(InvalidOrderItemError) as exc_info:
            compute_totals([OrderItemSpec("A", 1, 10.5)])

        assert exc_info.value.field == "unit_price"
        assert exc_info.value.index == 0

    def test_error_reports_item_index(self):
        items = [OrderItemSpec("A", 1, "10"), OrderItemSpec("B", 0, "10")]

        with pytest.raises(InvalidOrderItemError) as exc_info:
            compute_totals(items)

        assert exc_info.value.index == 1
        assert exc_info.value.field == "quantity"


class TestPriceItem:

    def test_strips_description(self):
        priced = price_item(0, OrderItemSpec("  Impresion  ", 1, "10"))

        assert priced.description == "Impresion"

    @pytest.mark.parametrize("description", ["", "   ", None])
    def test_blank_description_rejected(self, description):
        with pytest.raises(InvalidOrderItemError) as exc_info:
            price_item(0, OrderItemSpec(description, 1, "10"))

        assert exc_info.value.field == "description"

    def test_description_too_long(self):
        with pytest.raises(InvalidOrderItemError):
            price_item(0, OrderItemSpec("x" * (MAX_DESCRIPTION_LENGTH + 1), 1, "10"))

    @pytest.mark.parametrize("quantity", [0, -1, "abc"])
    def test_bad_quantity(self, quantity):
        with pytest.raises(InvalidOrderItemError) as exc_info:
            price_item(0, OrderItemSpec("A", quantity, "10"))

        assert exc_info.value.field == "quantity"

    def test_negative_price(self):
        with pytest.raises(InvalidOrderItemError) as exc_info:
            price_item(0, OrderItemSpec("A", 1, "-1"))

        assert exc_info.value.field == "unit_price"


class TestParsers:

    @pytest.mark.parametrize("rate", ["-0.01", "1", "1.5", "abc", 0.19])
    def test_invalid_tax_rate(self, rate):
        with pytest.raises(InvalidTaxRateError):
            parse_tax_rate(rate)

    def test_tax_rate_kept_to_four_places(self):
        assert parse_tax_rate("0.08") == Decimal("0.0800")

    def test_discount_none_is_zero(self):
        assert parse_discount(None) == Decimal("0.00")

    def test_negative_discount_rejected(self):
        with pytest.raises(InvalidAmountError) as exc_info:
            parse_discount("-1")

        assert exc_info.value.field == "discount"

    @pytest.mark.parametrize("amount", [None, 0, "-5", "nan", "abc", 1.0])
    def test_positive_amount_rejects(self, amount):
        with pytest.raises(InvalidAmountError):
            parse_positive_amount("amount", amount)

    def test_positive_amount_rounds(self):
        assert parse_positive_amount("amount", "10.005") == Decimal("10.01")


class TestBalanceHelpers:

    def test_amount_received(self):
        assert amount_received(Decimal("100000"), Decimal("40000")) == Decimal("60000")

    def test_rebased_balance(self):
        assert rebased_balance(Decimal("90000"), Decimal("60000")) == Decimal("30000")

    def test_rebased_balance_never_negative(self):
        assert rebased_balance(Decimal("50000"), Decimal("60000")) == Decimal("0.00")
