"""
StatusService -- commercial and operational status machines for orders.

Responsibility:
    The only writer of ``Order.status`` and ``Order.operational_status``.
    Validates every commercial transition against ORDER_STATUS_TRANSITIONS,
    appends exactly one OrderStatusHistory row per transition, applies the
    completion policy, cancels orders and walks the operational pipeline.

Architecture position:
    Kernel > Services -- imperative shell over domain/status.py.
    Used by OrderService and PaymentService for reconciliation, and by the
    orchestrator for cancel / operational moves.

Invariants enforced:
    - CANCELLED is terminal; cancellation requires ACTIVE and no payments,
      and forces balance to 0.
    - Operational moves are exactly one stage and only on ACTIVE orders.
    - One completion predicate (``should_complete``) on every path.

Failure modes:
    - InvalidStatusTransitionError, InvalidOperationalTransitionError,
      OrderCancelledError, OrderNotActiveError, OrderHasPaymentsError.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.config import CompletionPolicy
from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import Actor
from ledger_kernel.domain.status import (
    OperationalStatus,
    OrderStatus,
    is_valid_operational_transition,
    is_valid_status_transition,
    reconciled_status,
)
from ledger_kernel.exceptions import (
    InvalidOperationalTransitionError,
    InvalidStatusTransitionError,
    OrderCancelledError,
    OrderHasPaymentsError,
    OrderNotActiveError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.order import Order, OrderStatusHistory
from ledger_kernel.models.payment import Payment
from ledger_kernel.services.lookups import load_order

logger = get_logger("services.status")


class StatusService:
    """
    Applies status transitions and records their history.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT check capabilities; the orchestrator does.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        completion_policy: CompletionPolicy = CompletionPolicy.BALANCE_ONLY,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = CompletionPolicy(completion_policy)

    @property
    def completion_policy(self) -> CompletionPolicy:
        return self._policy

    def _append_history(
        self,
        order: Order,
        from_status: str | None,
        to_status: str,
        actor: Actor,
        reason: str | None = None,
        from_operational: str | None = None,
        to_operational: str | None = None,
    ) -> OrderStatusHistory:
        entry = OrderStatusHistory(
            tenant_id=order.tenant_id,
            order_id=order.id,
            from_status=from_status,
            to_status=to_status,
            from_operational_status=from_operational,
            to_operational_status=to_operational,
            reason=reason,
            changed_by=actor.id,
            created_at=self._clock.now(),
        )
        self._session.add(entry)
        return entry

    def record_creation(self, order: Order, actor: Actor) -> OrderStatusHistory:
        """Initial history row (None -> ACTIVE) for a new order."""
        return self._append_history(order, None, OrderStatus.ACTIVE.value, actor)

    def transition(
        self,
        order: Order,
        target: OrderStatus,
        actor: Actor,
        reason: str | None = None,
        operational_change: tuple[str, str] | None = None,
    ) -> OrderStatusHistory:
        """
        Move the order to ``target`` and append one history row.

        ``operational_change`` carries (from, to) of an operational move made
        in the same step, so both land on a single history row.

        Raises:
            InvalidStatusTransitionError: ``target`` not reachable.
        """
        current = OrderStatus(order.status)
        target = OrderStatus(target)
        if not is_valid_status_transition(current, target):
            raise InvalidStatusTransitionError(
                str(order.id), current.value, target.value
            )

        order.status = target.value
        from_operational, to_operational = operational_change or (None, None)
        entry = self._append_history(
            order, current.value, target.value, actor, reason,
            from_operational, to_operational,
        )
        logger.info(
            "order_status_changed",
            extra={
                "order_id": str(order.id),
                "from_status": current.value,
                "to_status": target.value,
                "reason": reason,
            },
        )
        return entry

    def reconcile(
        self,
        order: Order,
        actor: Actor,
        reason: str | None = None,
        operational_change: tuple[str, str] | None = None,
    ) -> OrderStatusHistory | None:
        """
        Complete or reopen the order to match its balance.

        Returns the history row written, or None if the status stays.
        """
        target = reconciled_status(
            self._policy, order.status, order.balance, order.operational_status
        )
        if target is None:
            return None
        return self.transition(order, target, actor, reason, operational_change)

    def cancel_order(
        self,
        tenant_id: UUID,
        order_id: UUID,
        actor: Actor,
        reason: str | None = None,
    ) -> Order:
        """
        Cancel an ACTIVE order that has no payments.

        Postconditions:
            status == CANCELLED, balance == 0, cancellation_reason stored,
            one history row appended.
        """
        order = load_order(self._session, tenant_id, order_id, for_update=True)
        if order.status == OrderStatus.CANCELLED:
            raise OrderCancelledError(str(order.id), "cancel order")
        if order.status != OrderStatus.ACTIVE:
            raise OrderNotActiveError(str(order.id), order.status, "cancel order")

        payment_count = self._session.execute(
            select(func.count(Payment.id)).where(
                Payment.tenant_id == tenant_id, Payment.order_id == order.id
            )
        ).scalar_one()
        if payment_count:
            raise OrderHasPaymentsError(str(order.id), payment_count)

        order.balance = ZERO
        order.cancellation_reason = reason
        self.transition(order, OrderStatus.CANCELLED, actor, reason)
        self._session.flush()
        return order

    def set_operational_status(
        self,
        tenant_id: UUID,
        order_id: UUID,
        target: OperationalStatus,
        actor: Actor,
    ) -> Order:
        """
        Move the order one stage along the operational pipeline.

        Only a move to DELIVERED can complete the order, and then a single
        history row records both changes.  Moves that leave the
        commercial status alone are logged but write no history.
        """
        target = OperationalStatus(target)
        order = load_order(self._session, tenant_id, order_id, for_update=True)
        if order.status == OrderStatus.CANCELLED:
            raise OrderCancelledError(str(order.id), "change operational status")
        if order.status != OrderStatus.ACTIVE:
            raise OrderNotActiveError(
                str(order.id), order.status, "change operational status"
            )

        current = OperationalStatus(order.operational_status)
        if not is_valid_operational_transition(current, target):
            raise InvalidOperationalTransitionError(
                str(order.id), current.value, target.value
            )

        order.operational_status = target.value
        history = None
        if target == OperationalStatus.DELIVERED:
            history = self.reconcile(
                order,
                actor,
                reason=f"operational status {current.value} -> {target.value}",
                operational_change=(current.value, target.value),
            )
        logger.info(
            "operational_status_changed",
            extra={
                "order_id": str(order.id),
                "from_operational_status": current.value,
                "to_operational_status": target.value,
                "completed": history is not None,
            },
        )
        self._session.flush()
        return order

    def history(self, tenant_id: UUID, order_id: UUID) -> list[OrderStatusHistory]:
        """Status history of an order, oldest first."""
        return list(
            self._session.execute(
                select(OrderStatusHistory)
                .where(
                    OrderStatusHistory.tenant_id == tenant_id,
                    OrderStatusHistory.order_id == order_id,
                )
                .order_by(OrderStatusHistory.created_at)
            ).scalars().all()
        )
