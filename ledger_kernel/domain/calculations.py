"""
Order pricing and balance arithmetic -- pure functions.

    line_total = round(quantity * unit_price)
    subtotal   = sum(line_total)
    tax_amount = round(subtotal * tax_rate)
    total      = subtotal + tax_amount - discount

Rounding is ROUND_HALF_UP to two places, applied per line and to the tax
amount, never to the sum.  All inputs go through ``to_decimal`` so floats
are rejected before any arithmetic happens.
"""

from collections.abc import Sequence
from decimal import Decimal

from ledger_kernel.db.types import (
    RATE_DECIMAL_PLACES,
    ZERO,
    money,
    round_money,
    to_decimal,
)
from ledger_kernel.domain.dtos import OrderItemSpec, OrderTotals, PricedItem
from ledger_kernel.exceptions import (
    EmptyOrderItemsError,
    InvalidAmountError,
    InvalidOrderItemError,
    InvalidTaxRateError,
    NegativeTotalError,
)

MAX_DESCRIPTION_LENGTH = 500


def price_item(index: int, item: OrderItemSpec) -> PricedItem:
    """Validate one line and compute its rounded total."""
    description = (item.description or "").strip()
    if not description:
        raise InvalidOrderItemError(index, "description", "must not be empty")
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise InvalidOrderItemError(
            index, "description", f"longer than {MAX_DESCRIPTION_LENGTH} characters"
        )

    try:
        quantity = round_money(to_decimal(item.quantity))
    except ValueError as exc:
        raise InvalidOrderItemError(index, "quantity", str(exc)) from None
    if quantity <= 0:
        raise InvalidOrderItemError(index, "quantity", "must be greater than zero")

    try:
        unit_price = money(item.unit_price)
    except ValueError as exc:
        raise InvalidOrderItemError(index, "unit_price", str(exc)) from None
    if unit_price < 0:
        raise InvalidOrderItemError(index, "unit_price", "must not be negative")

    return PricedItem(
        description=description,
        quantity=quantity,
        unit_price=unit_price,
        line_total=round_money(quantity * unit_price),
        product_id=item.product_id,
    )


def parse_tax_rate(tax_rate: Decimal | int | str) -> Decimal:
    """Tax rate as a fraction in [0, 1), kept to four places."""
    try:
        rate = round_money(to_decimal(tax_rate), decimal_places=RATE_DECIMAL_PLACES)
    except ValueError:
        raise InvalidTaxRateError(str(tax_rate)) from None
    if rate < 0 or rate >= 1:
        raise InvalidTaxRateError(str(rate))
    return rate


def parse_discount(discount: Decimal | int | str | None) -> Decimal:
    if discount is None:
        return ZERO
    try:
        value = money(discount)
    except ValueError:
        raise InvalidAmountError("discount", str(discount)) from None
    if value < 0:
        raise InvalidAmountError("discount", str(value))
    return value


def parse_positive_amount(field: str, amount: Decimal | int | str | None) -> Decimal:
    """Parse a strictly positive monetary amount (payments, expenses)."""
    if amount is None:
        raise InvalidAmountError(field, "None")
    try:
        value = money(amount)
    except ValueError:
        raise InvalidAmountError(field, str(amount)) from None
    if value <= 0:
        raise InvalidAmountError(field, str(value))
    return value


def compute_totals(
    items: Sequence[OrderItemSpec],
    tax_rate: Decimal | int | str = ZERO,
    discount: Decimal | int | str | None = None,
) -> OrderTotals:
    """
    Price a full set of order lines.

    Raises:
        EmptyOrderItemsError: No items.
        InvalidOrderItemError: A line has a bad description, quantity or price.
        InvalidTaxRateError: Rate outside [0, 1).
        InvalidAmountError: Negative or unparseable discount.
        NegativeTotalError: Discount exceeds subtotal plus tax.
    """
    if not items:
        raise EmptyOrderItemsError()

    priced = tuple(price_item(i, item) for i, item in enumerate(items))
    rate = parse_tax_rate(tax_rate)
    discount_value = parse_discount(discount)

    subtotal = sum((p.line_total for p in priced), ZERO)
    tax_amount = round_money(subtotal * rate)
    total = subtotal + tax_amount - discount_value
    if total < 0:
        raise NegativeTotalError(str(subtotal), str(tax_amount), str(discount_value))

    return OrderTotals(
        subtotal=subtotal,
        tax_rate=rate,
        tax_amount=tax_amount,
        discount=discount_value,
        total=total,
        items=priced,
    )


def amount_received(total: Decimal, balance: Decimal) -> Decimal:
    """Money already collected on an order: total minus what is still owed."""
    return total - balance


def rebased_balance(new_total: Decimal, received: Decimal) -> Decimal:
    """
    Balance after the total changes, never below zero.

    OrderService.replace_items raises TotalBelowReceivedError before calling
    this with new_total < received, so on that path the floor never applies.
    """
    return max(ZERO, new_total - received)
