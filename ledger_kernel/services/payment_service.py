"""
PaymentService -- apply, edit and delete payments with account mirroring.

Responsibility:
    Keeps Order.balance, the order status and the payment method's account
    journal consistent whenever a payment is created, changed or removed.

Architecture position:
    Kernel > Services -- imperative shell.
    Composes StatusService (reconciliation) and AccountService (mirroring).

Invariants enforced:
    - status != CANCELLED  =>  balance == total - sum(payments.amount).
    - Account.balance == sum(CREDIT) - sum(DEBIT).
    - A payment never exceeds what the order still owes.
    - Lock order: the order row first, then accounts in ascending id.

Failure modes:
    - InvalidAmountError, ReferenceNotFoundError, InactiveReferenceError.
    - OrderNotFoundError, PaymentNotFoundError.
    - OrderCancelledError, OrderNotActiveError, OverpaymentError.

Account mirroring is best effort: a method without an account is logged at
WARNING and the order side still commits.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.calculations import parse_positive_amount
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import UNSET, Actor
from ledger_kernel.domain.status import OrderStatus
from ledger_kernel.exceptions import (
    OrderCancelledError,
    OrderNotActiveError,
    OverpaymentError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import ReferenceType
from ledger_kernel.models.order import Order
from ledger_kernel.models.payment import Payment
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.lookups import load_order, load_payment, load_payment_method
from ledger_kernel.services.status_service import StatusService

logger = get_logger("services.payment")


class PaymentService:
    """
    Payment lifecycle against an order.

    Contract:
        Every method locks the parent order before reading its balance and
        leaves both ledgers consistent on return.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT check capabilities; the orchestrator does.
    """

    def __init__(
        self,
        session: Session,
        status_service: StatusService,
        account_service: AccountService,
        clock: Clock | None = None,
    ):
        self._session = session
        self._status = status_service
        self._accounts = account_service
        self._clock = clock or SystemClock()

    @staticmethod
    def _description(order: Order) -> str:
        return f"Payment order #{order.number}"

    def _locked_payment_and_order(
        self,
        tenant_id: UUID,
        payment_id: UUID,
    ) -> tuple[Payment, Order]:
        """Lock the parent order, then re-read the payment under that lock."""
        payment = load_payment(self._session, tenant_id, payment_id)
        order = load_order(self._session, tenant_id, payment.order_id, for_update=True)
        payment = load_payment(self._session, tenant_id, payment_id, for_update=True)
        return payment, order

    def list_payments(self, tenant_id: UUID, order_id: UUID) -> list[Payment]:
        return list(
            self._session.execute(
                select(Payment)
                .where(Payment.tenant_id == tenant_id, Payment.order_id == order_id)
                .order_by(Payment.payment_date, Payment.created_at)
            ).scalars().all()
        )

    def apply_payment(
        self,
        tenant_id: UUID,
        order_id: UUID,
        payment_method_id: UUID,
        amount: Decimal | int | str,
        actor: Actor,
        payment_date: date | None = None,
        notes: str | None = None,
    ) -> Payment:
        """
        Record a payment and mirror it as a CREDIT on the method's account.

        Preconditions:
            order ACTIVE, method active, 0 < amount <= order.balance.

        Postconditions:
            order.balance decreased by amount; order completed if the
            completion policy is met; account credited by amount.
        """
        value = parse_positive_amount("amount", amount)
        order = load_order(self._session, tenant_id, order_id, for_update=True)
        method = load_payment_method(self._session, tenant_id, payment_method_id)

        if order.status == OrderStatus.CANCELLED:
            raise OrderCancelledError(str(order.id), "register payment")
        if order.status != OrderStatus.ACTIVE:
            raise OrderNotActiveError(str(order.id), order.status, "register payment")
        if value > order.balance:
            raise OverpaymentError(str(order.id), str(value), str(order.balance))

        payment = Payment(
            tenant_id=tenant_id,
            order_id=order.id,
            payment_method_id=method.id,
            amount=value,
            payment_date=payment_date or self._clock.today(),
            registered_by=actor.id,
            notes=notes,
        )
        self._session.add(payment)
        self._session.flush()

        order.balance = order.balance - value
        self._status.reconcile(order, actor, reason=f"payment registered ({value})")

        account = self._accounts.get_account_for_method(
            tenant_id, method.id, for_update=True
        )
        if account is None:
            self._log_mirroring_skipped(method.id, payment.id, "apply")
        else:
            self._accounts.credit(
                account,
                value,
                self._description(order),
                registered_by=actor.id,
                reference_id=payment.id,
                reference_type=ReferenceType.PAYMENT,
            )

        self._session.flush()
        with LogContext.bind(payment_id=payment.id):
            logger.info(
                "payment_applied",
                extra={
                    "order_id": str(order.id),
                    "amount": str(value),
                    "order_balance": str(order.balance),
                    "order_status": order.status,
                },
            )
        return payment

    def edit_payment(
        self,
        tenant_id: UUID,
        payment_id: UUID,
        actor: Actor,
        amount: Decimal | int | str | None = None,
        payment_method_id: UUID | None = None,
        notes=UNSET,
    ) -> Payment:
        """
        Change a payment's amount, method or notes.

        ``diff = new_amount - old_amount`` moves the order balance by
        ``-diff``; the order completes or reopens to match.  On the account
        side an unchanged method gets a PAYMENT_ADJUSTMENT for ``|diff|``;
        a changed method has the old bookings reversed and a fresh PAYMENT
        credit booked on the new method's account.
        """
        payment, order = self._locked_payment_and_order(tenant_id, payment_id)
        if order.status == OrderStatus.CANCELLED:
            raise OrderCancelledError(str(order.id), "edit payment")

        old_amount = payment.amount
        old_method_id = payment.payment_method_id
        new_amount = (
            old_amount if amount is None else parse_positive_amount("amount", amount)
        )
        new_method_id = old_method_id
        if payment_method_id is not None and payment_method_id != old_method_id:
            new_method_id = load_payment_method(
                self._session, tenant_id, payment_method_id
            ).id

        available = order.balance + old_amount
        if new_amount > available:
            raise OverpaymentError(str(order.id), str(new_amount), str(available))

        diff = new_amount - old_amount
        payment.amount = new_amount
        payment.payment_method_id = new_method_id
        if notes is not UNSET:
            payment.notes = notes

        order.balance = order.balance - diff
        if diff:
            self._status.reconcile(
                order, actor, reason=f"payment edited ({old_amount} -> {new_amount})"
            )

        if new_method_id == old_method_id:
            self._mirror_adjustment(tenant_id, order, payment, diff, actor)
        else:
            self._mirror_method_change(
                tenant_id, order, payment, old_method_id, new_amount, actor
            )

        self._session.flush()
        with LogContext.bind(payment_id=payment.id):
            logger.info(
                "payment_edited",
                extra={
                    "order_id": str(order.id),
                    "old_amount": str(old_amount),
                    "new_amount": str(new_amount),
                    "method_changed": new_method_id != old_method_id,
                    "order_balance": str(order.balance),
                    "order_status": order.status,
                },
            )
        return payment

    def _mirror_adjustment(
        self,
        tenant_id: UUID,
        order: Order,
        payment: Payment,
        diff: Decimal,
        actor: Actor,
    ) -> None:
        if not diff:
            return
        account = self._accounts.get_account_for_method(
            tenant_id, payment.payment_method_id, for_update=True
        )
        if account is None:
            self._log_mirroring_skipped(payment.payment_method_id, payment.id, "edit")
            return
        description = f"Payment adjustment order #{order.number}"
        if diff > 0:
            self._accounts.credit(
                account, diff, description, registered_by=actor.id,
                reference_id=payment.id,
                reference_type=ReferenceType.PAYMENT_ADJUSTMENT,
            )
        else:
            self._accounts.debit(
                account, -diff, description, registered_by=actor.id,
                reference_id=payment.id,
                reference_type=ReferenceType.PAYMENT_ADJUSTMENT,
            )

    def _mirror_method_change(
        self,
        tenant_id: UUID,
        order: Order,
        payment: Payment,
        old_method_id: UUID,
        new_amount: Decimal,
        actor: Actor,
    ) -> None:
        # Both accounts are locked up front so the id ordering holds.
        locked = self._accounts.lock_accounts_for_methods(
            tenant_id, [old_method_id, payment.payment_method_id]
        )
        self._accounts.reverse_reference(tenant_id, payment.id)

        account = locked.get(payment.payment_method_id)
        if account is None:
            self._log_mirroring_skipped(payment.payment_method_id, payment.id, "edit")
            return
        self._accounts.credit(
            account,
            new_amount,
            self._description(order),
            registered_by=actor.id,
            reference_id=payment.id,
            reference_type=ReferenceType.PAYMENT,
        )

    def delete_payment(
        self,
        tenant_id: UUID,
        payment_id: UUID,
        actor: Actor,
    ) -> Order:
        """
        Remove a payment and everything it booked.

        Postconditions:
            order.balance increased by the payment amount, order reopened if
            it was COMPLETED, every transaction referencing the payment gone
            and the touched account balances reduced to match.
        """
        payment, order = self._locked_payment_and_order(tenant_id, payment_id)
        if order.status == OrderStatus.CANCELLED:
            raise OrderCancelledError(str(order.id), "delete payment")

        amount = payment.amount
        reversed_amounts = self._accounts.reverse_reference(tenant_id, payment.id)
        if not reversed_amounts:
            self._log_mirroring_skipped(payment.payment_method_id, payment.id, "delete")

        self._session.delete(payment)
        order.balance = order.balance + amount
        self._status.reconcile(order, actor, reason=f"payment deleted ({amount})")
        self._session.flush()

        with LogContext.bind(payment_id=payment_id):
            logger.info(
                "payment_deleted",
                extra={
                    "order_id": str(order.id),
                    "amount": str(amount),
                    "order_balance": str(order.balance),
                    "order_status": order.status,
                },
            )
        return order

    def _log_mirroring_skipped(self, method_id: UUID, payment_id: UUID, operation: str) -> None:
        logger.warning(
            "account_mirroring_skipped",
            extra={
                "payment_method_id": str(method_id),
                "reference_id": str(payment_id),
                "operation": operation,
            },
        )
