"""
OrderService -- order creation, item replacement and reads.

Responsibility:
    Prices orders (domain/calculations.py), assigns their number from the
    "orders" series, writes the initial status history row and keeps the
    balance invariant when the item set is replaced.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - total == subtotal + tax_amount - discount, balance starts at total.
    - Item replacement keeps balance == total - received, refusing any new
      total below the amount already received.
    - Items are never updated in place; the whole set is deleted and
      re-inserted.

Failure modes:
    - ValidationError subclasses from pricing; MissingFieldError for a
      missing customer.
    - ReferenceNotFoundError / InactiveReferenceError for the customer.
    - OrderCancelledError, TotalBelowReceivedError on replace_items().
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.calculations import (
    amount_received,
    compute_totals,
    rebased_balance,
)
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import Actor, OrderItemSpec, OrderTotals
from ledger_kernel.domain.status import OperationalStatus, OrderStatus
from ledger_kernel.exceptions import (
    MissingFieldError,
    OrderCancelledError,
    TotalBelowReceivedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.order import Order, OrderItem
from ledger_kernel.services.lookups import load_customer, load_order
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.status_service import StatusService

logger = get_logger("services.order")


def _build_items(order: Order, totals: OrderTotals) -> list[OrderItem]:
    return [
        OrderItem(
            tenant_id=order.tenant_id,
            position=position,
            product_id=item.product_id,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            line_total=item.line_total,
        )
        for position, item in enumerate(totals.items)
    ]


class OrderService:
    """
    Creates orders and replaces their items.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT check capabilities; the orchestrator does.
    """

    def __init__(
        self,
        session: Session,
        status_service: StatusService,
        sequence_service: SequenceService | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._status = status_service
        self._sequence = sequence_service or SequenceService(session)
        self._clock = clock or SystemClock()

    def get_order(
        self,
        tenant_id: UUID,
        order_id: UUID,
        for_update: bool = False,
    ) -> Order:
        """Raises OrderNotFoundError outside the tenant."""
        return load_order(self._session, tenant_id, order_id, for_update=for_update)

    def create_order(
        self,
        tenant_id: UUID,
        customer_id: UUID,
        items: Sequence[OrderItemSpec],
        actor: Actor,
        tax_rate: Decimal | int | str = 0,
        discount: Decimal | int | str | None = None,
        order_date: date | None = None,
        due_date: date | None = None,
        notes: str | None = None,
    ) -> Order:
        """
        Price, number and persist a new ACTIVE order.

        Postconditions:
            - balance == total, status ACTIVE, operational status PENDING.
            - One history row (None -> ACTIVE).
        """
        if customer_id is None:
            raise MissingFieldError("customer_id")
        totals = compute_totals(items, tax_rate, discount)
        load_customer(self._session, tenant_id, customer_id)

        number = self._sequence.next_number(tenant_id, SequenceService.ORDERS)

        order = Order(
            tenant_id=tenant_id,
            number=number,
            customer_id=customer_id,
            order_date=order_date or self._clock.today(),
            due_date=due_date,
            subtotal=totals.subtotal,
            tax_rate=totals.tax_rate,
            tax_amount=totals.tax_amount,
            discount=totals.discount,
            total=totals.total,
            balance=totals.total,
            status=OrderStatus.ACTIVE.value,
            operational_status=OperationalStatus.PENDING.value,
            seller_id=actor.id,
            seller_name=actor.name,
            notes=notes,
        )
        order.items = _build_items(order, totals)
        self._session.add(order)
        self._session.flush()

        self._status.record_creation(order, actor)
        self._session.flush()

        logger.info(
            "order_created",
            extra={
                "order_id": str(order.id),
                "order_number": order.number,
                "total": str(order.total),
                "item_count": len(order.items),
            },
        )
        return order

    def replace_items(
        self,
        tenant_id: UUID,
        order_id: UUID,
        items: Sequence[OrderItemSpec],
        actor: Actor,
    ) -> Order:
        """
        Replace the order's item set and re-base its balance.

        The order's tax rate and discount are kept.  The amount already
        received is preserved: ``balance = max(0, new_total - received)``,
        then the commercial status is reconciled.
        """
        order = load_order(self._session, tenant_id, order_id, for_update=True)
        if order.status == OrderStatus.CANCELLED:
            raise OrderCancelledError(str(order.id), "replace items")

        totals = compute_totals(items, order.tax_rate, order.discount)
        received = amount_received(order.total, order.balance)
        if totals.total < received:
            raise TotalBelowReceivedError(
                str(order.id), str(totals.total), str(received)
            )

        previous_total = order.total
        order.items.clear()
        self._session.flush()
        order.items.extend(_build_items(order, totals))

        order.subtotal = totals.subtotal
        order.tax_amount = totals.tax_amount
        order.total = totals.total
        order.balance = rebased_balance(totals.total, received)

        self._status.reconcile(order, actor, reason="order items replaced")
        self._session.flush()

        logger.info(
            "order_items_replaced",
            extra={
                "order_id": str(order.id),
                "previous_total": str(previous_total),
                "total": str(order.total),
                "balance": str(order.balance),
            },
        )
        return order
