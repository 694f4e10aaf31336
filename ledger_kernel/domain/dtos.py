"""
DTOs -- immutable values passed into and out of ledger services.

Architecture position:
    Kernel > Domain -- pure, zero I/O, no ORM imports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID


class _Unset:
    """Sentinel type for optional arguments where None is a meaningful value."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


@dataclass(frozen=True)
class Actor:
    """
    The user on whose behalf an operation runs.

    ``id`` is stored as ``registered_by`` / ``changed_by``.  Authentication
    happens outside the kernel; an Actor is trusted as given.
    """

    id: UUID
    name: str
    is_super_admin: bool = False


@dataclass(frozen=True)
class OrderItemSpec:
    """One requested order line.  Validated by ``compute_totals``."""

    description: str
    quantity: Decimal | int | str
    unit_price: Decimal | int | str
    product_id: UUID | None = None


@dataclass(frozen=True)
class PricedItem:
    """An order line after validation and rounding."""

    description: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal
    product_id: UUID | None = None


@dataclass(frozen=True)
class OrderTotals:
    """
    Result of pricing an order.

    Guarantees ``total == subtotal + tax_amount - discount`` and ``total >= 0``.
    """

    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount: Decimal
    total: Decimal
    items: tuple[PricedItem, ...] = field(default_factory=tuple)
