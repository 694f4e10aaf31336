"""
Order status rules -- pure transition tables and predicates.

Two independent state machines live on an Order:

    Commercial status (``OrderStatus``)

        ACTIVE ----(balance settled)----> COMPLETED
          ^                                  |
          +------(balance reopened)----------+
          |
          +------(explicit cancel)-------> CANCELLED   (terminal)

    Operational status (``OperationalStatus``), a linear pipeline walked one
    step at a time in either direction:

        PENDING <-> APPROVED <-> IN_PRODUCTION <-> PRODUCED <-> DELIVERED

The machines couple through the completion policy: whether an ACTIVE order
completes depends on its balance and, under PAID_AND_DELIVERED, on having
been delivered.  Nothing here touches the database; services call these
functions and persist the outcome.
"""

from decimal import Decimal
from enum import Enum

from ledger_kernel.config import CompletionPolicy


class OrderStatus(str, Enum):
    """Commercial status of an order."""

    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class OperationalStatus(str, Enum):
    """Production pipeline stage of an order."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    IN_PRODUCTION = "IN_PRODUCTION"
    PRODUCED = "PRODUCED"
    DELIVERED = "DELIVERED"


ORDER_STATUS_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.ACTIVE: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset({OrderStatus.ACTIVE}),
    OrderStatus.CANCELLED: frozenset(),
}

OPERATIONAL_SEQUENCE: tuple[OperationalStatus, ...] = (
    OperationalStatus.PENDING,
    OperationalStatus.APPROVED,
    OperationalStatus.IN_PRODUCTION,
    OperationalStatus.PRODUCED,
    OperationalStatus.DELIVERED,
)


def is_valid_status_transition(
    from_status: OrderStatus | None,
    to_status: OrderStatus,
) -> bool:
    """
    Check a commercial status change against the transition table.

    ``from_status=None`` is the creation edge and only ACTIVE may follow it.
    """
    if from_status is None:
        return to_status == OrderStatus.ACTIVE
    return to_status in ORDER_STATUS_TRANSITIONS[OrderStatus(from_status)]


def is_valid_operational_transition(
    current: OperationalStatus,
    target: OperationalStatus,
) -> bool:
    """Legal only for a move of exactly one stage; staying put is not a move."""
    current_index = OPERATIONAL_SEQUENCE.index(OperationalStatus(current))
    target_index = OPERATIONAL_SEQUENCE.index(OperationalStatus(target))
    return abs(target_index - current_index) == 1


def adjacent_operational_statuses(current: OperationalStatus) -> list[OperationalStatus]:
    """Stages reachable from ``current`` in one move, backward first."""
    index = OPERATIONAL_SEQUENCE.index(OperationalStatus(current))
    result = []
    if index > 0:
        result.append(OPERATIONAL_SEQUENCE[index - 1])
    if index < len(OPERATIONAL_SEQUENCE) - 1:
        result.append(OPERATIONAL_SEQUENCE[index + 1])
    return result


def should_complete(
    policy: CompletionPolicy,
    balance: Decimal,
    operational_status: OperationalStatus,
) -> bool:
    """The single completion predicate used on every ledger path."""
    if balance > 0:
        return False
    if CompletionPolicy(policy) == CompletionPolicy.PAID_AND_DELIVERED:
        return OperationalStatus(operational_status) == OperationalStatus.DELIVERED
    return True


def reconciled_status(
    policy: CompletionPolicy,
    status: OrderStatus,
    balance: Decimal,
    operational_status: OperationalStatus,
) -> OrderStatus | None:
    """
    Return the commercial status an order should move to, or None to stay.

    CANCELLED orders never move.  COMPLETED reopens whenever money is owed
    again; ACTIVE completes when the policy is satisfied.
    """
    status = OrderStatus(status)
    if status == OrderStatus.ACTIVE and should_complete(policy, balance, operational_status):
        return OrderStatus.COMPLETED
    if status == OrderStatus.COMPLETED and balance > 0:
        return OrderStatus.ACTIVE
    return None
