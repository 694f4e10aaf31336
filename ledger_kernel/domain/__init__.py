"""
Pure domain layer.

Value objects, pricing arithmetic and status transition rules with NO
dependencies on the ORM, the database or I/O (SystemClock aside).
"""

from ledger_kernel.domain.calculations import (
    amount_received,
    compute_totals,
    rebased_balance,
)
from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.dtos import (
    UNSET,
    Actor,
    OrderItemSpec,
    OrderTotals,
    PricedItem,
)
from ledger_kernel.domain.status import (
    OPERATIONAL_SEQUENCE,
    ORDER_STATUS_TRANSITIONS,
    OperationalStatus,
    OrderStatus,
    is_valid_operational_transition,
    is_valid_status_transition,
    reconciled_status,
    should_complete,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # DTOs
    "UNSET",
    "Actor",
    "OrderItemSpec",
    "OrderTotals",
    "PricedItem",
    # Calculations
    "compute_totals",
    "amount_received",
    "rebased_balance",
    # Status rules
    "OrderStatus",
    "OperationalStatus",
    "ORDER_STATUS_TRANSITIONS",
    "OPERATIONAL_SEQUENCE",
    "is_valid_status_transition",
    "is_valid_operational_transition",
    "should_complete",
    "reconciled_status",
]
