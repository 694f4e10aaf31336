"""
LedgerOrchestrator -- atomic unit of work around every ledger operation.

Responsibility:
    Opens a session per attempt, bounds lock waits, checks the caller's
    capability, runs one service operation, and commits.  Any error rolls
    the whole unit back.  Retryable conflicts (lock timeout, deadlock,
    serialization failure, number collision) are retried with linear
    backoff up to ``settings.max_retries`` attempts, then re-raised.

Architecture position:
    Kernel > Services -- the outermost shell.  The only component that
    commits.  Constructs the per-session service graph (LedgerServices).

Failure modes:
    - Domain errors (LedgerKernelError subclasses) propagate unmodified.
    - SequenceConflictError / LockTimeoutError after the last attempt.
    - InternalLedgerError for any other SQLAlchemyError.

Usage:
    orchestrator = LedgerOrchestrator(get_session_factory(), settings)
    payment = orchestrator.apply_payment(
        tenant_id, order_id, method_id, Decimal("50000"), actor
    )
"""

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.config import LedgerSettings
from ledger_kernel.db.engine import set_lock_timeout
from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.db.types import to_decimal
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import UNSET, Actor, OrderItemSpec
from ledger_kernel.domain.status import OperationalStatus
from ledger_kernel.exceptions import (
    ConflictError,
    InternalLedgerError,
    LedgerKernelError,
    LockTimeoutError,
    SequenceConflictError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.expense import Expense
from ledger_kernel.models.order import Order
from ledger_kernel.models.payment import Payment
from ledger_kernel.services import authorization as caps
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.authorization import AllowAllAuthority, Authority, require
from ledger_kernel.services.expense_service import ExpenseService
from ledger_kernel.services.integrity_service import IntegrityReport, IntegrityService
from ledger_kernel.services.order_service import OrderService
from ledger_kernel.services.payment_service import PaymentService
from ledger_kernel.services.reference_guard import ReferenceGuard
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.status_service import StatusService

logger = get_logger("services.orchestrator")

T = TypeVar("T")

# PostgreSQL SQLSTATEs that mean "try again"
_RETRYABLE_SQLSTATES = {
    "55P03": "lock_not_available",
    "40P01": "deadlock_detected",
    "40001": "serialization_failure",
}

# Unique constraints whose violation means two allocations raced
_NUMBER_CONSTRAINTS = {
    "uq_order_tenant_number": "orders",
    "uq_expense_tenant_number": "expenses",
    "uq_sequence_tenant_series": "sequence",
    # SQLite reports columns instead of constraint names
    "orders.tenant_id, orders.number": "orders",
    "expenses.tenant_id, expenses.number": "expenses",
    "sequence_counters.tenant_id, sequence_counters.series": "sequence",
}


@dataclass
class LedgerServices:
    """The service graph bound to one session."""

    session: Session
    sequence: SequenceService
    accounts: AccountService
    status: StatusService
    orders: OrderService
    payments: PaymentService
    expenses: ExpenseService
    references: ReferenceGuard
    integrity: IntegrityService

    @classmethod
    def build(cls, session: Session, settings: LedgerSettings, clock: Clock) -> "LedgerServices":
        sequence = SequenceService(session)
        accounts = AccountService(session, clock)
        status = StatusService(session, clock, settings.completion_policy)
        return cls(
            session=session,
            sequence=sequence,
            accounts=accounts,
            status=status,
            orders=OrderService(session, status, sequence, clock),
            payments=PaymentService(session, status, accounts, clock),
            expenses=ExpenseService(session, accounts, sequence, clock),
            references=ReferenceGuard(session),
            integrity=IntegrityService(session),
        )


def _translate_db_error(operation: str, tenant_id: UUID, exc: SQLAlchemyError) -> LedgerKernelError:
    """Map a database exception to the kernel's typed errors."""
    if isinstance(exc, IntegrityError):
        message = str(exc.orig) if exc.orig is not None else str(exc)
        for marker, series in _NUMBER_CONSTRAINTS.items():
            if marker in message:
                return SequenceConflictError(str(tenant_id), series, marker)
        return InternalLedgerError(operation, message)

    if isinstance(exc, DBAPIError):
        sqlstate = getattr(exc.orig, "pgcode", None)
        if sqlstate in _RETRYABLE_SQLSTATES:
            return LockTimeoutError(operation, _RETRYABLE_SQLSTATES[sqlstate])
        if "database is locked" in str(exc.orig):
            return LockTimeoutError(operation, "database is locked")

    return InternalLedgerError(operation, str(exc))


def _has_discount(discount) -> bool:
    if discount is None:
        return False
    try:
        return to_decimal(discount) != 0
    except ValueError:
        # Unparseable; OrderService raises the validation error.
        return False


class LedgerOrchestrator:
    """
    Entry point for ledger writes.

    Contract:
        Each public method is one database transaction.  Either all of its
        effects commit or none do.

    Guarantees:
        - Capability checked before any row is read.
        - Lock waits bounded by ``settings.lock_timeout_ms`` (PostgreSQL).
        - Conflicts retried; everything else fails fast.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: LedgerSettings | None = None,
        authority: Authority | None = None,
        clock: Clock | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._settings = settings or LedgerSettings()
        self._authority = authority or AllowAllAuthority()
        self._clock = clock or SystemClock()
        self._sleep = sleep
        register_immutability_listeners()

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    def run(
        self,
        operation: str,
        tenant_id: UUID,
        actor: Actor | None,
        work: Callable[[LedgerServices], T],
    ) -> T:
        """
        Execute ``work`` as one atomic, retried unit.

        Public so callers can compose several service calls in a single
        transaction.
        """
        max_attempts = self._settings.max_retries
        with LogContext.bind(
            correlation_id=uuid4(),
            tenant_id=tenant_id,
            actor_id=actor.id if actor else None,
        ):
            for attempt in range(1, max_attempts + 1):
                try:
                    return self._attempt(operation, tenant_id, work)
                except ConflictError as exc:
                    if attempt >= max_attempts:
                        logger.error(
                            "ledger_operation_conflict_exhausted",
                            extra={
                                "operation": operation,
                                "attempts": attempt,
                                "error_code": exc.code,
                            },
                        )
                        raise
                    logger.warning(
                        "ledger_operation_retry",
                        extra={
                            "operation": operation,
                            "attempt": attempt,
                            "max_retries": max_attempts,
                            "error_code": exc.code,
                        },
                    )
                    self._sleep(self._settings.retry_backoff_seconds * attempt)
        raise AssertionError("unreachable")

    def _attempt(
        self,
        operation: str,
        tenant_id: UUID,
        work: Callable[[LedgerServices], T],
    ) -> T:
        session = self._session_factory()
        try:
            set_lock_timeout(session, self._settings.lock_timeout_ms)
            services = LedgerServices.build(session, self._settings, self._clock)
            result = work(services)
            session.commit()
            logger.debug("ledger_operation_committed", extra={"operation": operation})
            return result
        except LedgerKernelError as exc:
            session.rollback()
            logger.info(
                "ledger_operation_rejected",
                extra={"operation": operation, "error_code": exc.code},
            )
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            translated = _translate_db_error(operation, tenant_id, exc)
            logger.warning(
                "ledger_operation_db_error",
                extra={"operation": operation, "error_code": translated.code},
                exc_info=True,
            )
            raise translated from exc
        except Exception:
            session.rollback()
            logger.exception("ledger_operation_failed", extra={"operation": operation})
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

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
        require(self._authority, actor, caps.ORDERS_CREATE)
        if _has_discount(discount):
            require(self._authority, actor, caps.ORDERS_DISCOUNT)
        return self.run(
            "create_order", tenant_id, actor,
            lambda s: s.orders.create_order(
                tenant_id, customer_id, items, actor,
                tax_rate=tax_rate, discount=discount, order_date=order_date,
                due_date=due_date, notes=notes,
            ),
        )

    def replace_items(
        self,
        tenant_id: UUID,
        order_id: UUID,
        items: Sequence[OrderItemSpec],
        actor: Actor,
    ) -> Order:
        require(self._authority, actor, caps.ORDERS_UPDATE)
        with LogContext.bind(order_id=order_id):
            return self.run(
                "replace_items", tenant_id, actor,
                lambda s: s.orders.replace_items(tenant_id, order_id, items, actor),
            )

    def cancel_order(
        self,
        tenant_id: UUID,
        order_id: UUID,
        actor: Actor,
        reason: str | None = None,
    ) -> Order:
        require(self._authority, actor, caps.ORDERS_UPDATE)
        with LogContext.bind(order_id=order_id):
            return self.run(
                "cancel_order", tenant_id, actor,
                lambda s: s.status.cancel_order(tenant_id, order_id, actor, reason),
            )

    def set_operational_status(
        self,
        tenant_id: UUID,
        order_id: UUID,
        target: OperationalStatus,
        actor: Actor,
    ) -> Order:
        require(self._authority, actor, caps.ORDERS_UPDATE)
        with LogContext.bind(order_id=order_id):
            return self.run(
                "set_operational_status", tenant_id, actor,
                lambda s: s.status.set_operational_status(
                    tenant_id, order_id, target, actor
                ),
            )

    def get_order(self, tenant_id: UUID, order_id: UUID) -> Order:
        return self.run(
            "get_order", tenant_id, None,
            lambda s: s.orders.get_order(tenant_id, order_id),
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

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
        require(self._authority, actor, caps.PAYMENTS_CREATE)
        with LogContext.bind(order_id=order_id):
            return self.run(
                "apply_payment", tenant_id, actor,
                lambda s: s.payments.apply_payment(
                    tenant_id, order_id, payment_method_id, amount, actor,
                    payment_date=payment_date, notes=notes,
                ),
            )

    def edit_payment(
        self,
        tenant_id: UUID,
        payment_id: UUID,
        actor: Actor,
        amount: Decimal | int | str | None = None,
        payment_method_id: UUID | None = None,
        notes=UNSET,
    ) -> Payment:
        require(self._authority, actor, caps.PAYMENTS_EDIT)
        with LogContext.bind(payment_id=payment_id):
            return self.run(
                "edit_payment", tenant_id, actor,
                lambda s: s.payments.edit_payment(
                    tenant_id, payment_id, actor,
                    amount=amount, payment_method_id=payment_method_id, notes=notes,
                ),
            )

    def delete_payment(self, tenant_id: UUID, payment_id: UUID, actor: Actor) -> Order:
        require(self._authority, actor, caps.PAYMENTS_DELETE)
        with LogContext.bind(payment_id=payment_id):
            return self.run(
                "delete_payment", tenant_id, actor,
                lambda s: s.payments.delete_payment(tenant_id, payment_id, actor),
            )

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    def create_expense(
        self,
        tenant_id: UUID,
        description: str,
        amount: Decimal | int | str,
        payment_method_id: UUID,
        category_id: UUID,
        actor: Actor,
        supplier_id: UUID | None = None,
        expense_date: date | None = None,
        invoice_number: str | None = None,
        notes: str | None = None,
    ) -> Expense:
        require(self._authority, actor, caps.EXPENSES_CREATE)
        return self.run(
            "create_expense", tenant_id, actor,
            lambda s: s.expenses.create_expense(
                tenant_id, description, amount, payment_method_id, category_id,
                actor, supplier_id=supplier_id, expense_date=expense_date,
                invoice_number=invoice_number, notes=notes,
            ),
        )

    def delete_expense(self, tenant_id: UUID, expense_id: UUID, actor: Actor) -> None:
        require(self._authority, actor, caps.EXPENSES_DELETE)
        self.run(
            "delete_expense", tenant_id, actor,
            lambda s: s.expenses.delete_expense(tenant_id, expense_id, actor),
        )

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    def delete_payment_method(self, tenant_id: UUID, payment_method_id: UUID, actor: Actor) -> None:
        require(self._authority, actor, caps.SETTINGS_DELETE)
        self.run(
            "delete_payment_method", tenant_id, actor,
            lambda s: s.references.delete_payment_method(tenant_id, payment_method_id),
        )

    def delete_supplier(self, tenant_id: UUID, supplier_id: UUID, actor: Actor) -> None:
        require(self._authority, actor, caps.SETTINGS_DELETE)
        self.run(
            "delete_supplier", tenant_id, actor,
            lambda s: s.references.delete_supplier(tenant_id, supplier_id),
        )

    def delete_category(self, tenant_id: UUID, category_id: UUID, actor: Actor) -> None:
        require(self._authority, actor, caps.SETTINGS_DELETE)
        self.run(
            "delete_category", tenant_id, actor,
            lambda s: s.references.delete_category(tenant_id, category_id),
        )

    def delete_customer(self, tenant_id: UUID, customer_id: UUID, actor: Actor) -> None:
        require(self._authority, actor, caps.SETTINGS_DELETE)
        self.run(
            "delete_customer", tenant_id, actor,
            lambda s: s.references.delete_customer(tenant_id, customer_id),
        )

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def audit_tenant(self, tenant_id: UUID) -> IntegrityReport:
        return self.run(
            "audit_tenant", tenant_id, None,
            lambda s: s.integrity.audit_tenant(tenant_id),
        )
