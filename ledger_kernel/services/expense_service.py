"""
ExpenseService -- numbered expenses mirrored as account debits.

Responsibility:
    Validates an expense against its category, payment method and optional
    supplier, numbers it from the "expenses" series and books a DEBIT on the
    paying method's account.  Deleting an expense reverses that booking.

Architecture position:
    Kernel > Services -- imperative shell.

Failure modes:
    - MissingFieldError, InvalidAmountError for bad input.
    - ReferenceNotFoundError / InactiveReferenceError for references.
    - ExpenseNotFoundError on get / delete.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.calculations import parse_positive_amount
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import Actor
from ledger_kernel.exceptions import ExpenseNotFoundError, MissingFieldError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import ReferenceType
from ledger_kernel.models.expense import Expense
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.lookups import (
    load_category,
    load_payment_method,
    load_supplier,
)
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.expense")


class ExpenseService:
    """Creates and deletes expenses.  Does NOT commit."""

    def __init__(
        self,
        session: Session,
        account_service: AccountService,
        sequence_service: SequenceService | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._accounts = account_service
        self._sequence = sequence_service or SequenceService(session)
        self._clock = clock or SystemClock()

    def get_expense(self, tenant_id: UUID, expense_id: UUID) -> Expense:
        expense = self._session.execute(
            select(Expense).where(
                Expense.id == expense_id, Expense.tenant_id == tenant_id
            )
        ).scalar_one_or_none()
        if expense is None:
            raise ExpenseNotFoundError(str(expense_id))
        return expense

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
        """
        Register an expense and debit the paying method's account.

        The debit is skipped (and logged) when the method has no account.
        """
        description = (description or "").strip()
        if not description:
            raise MissingFieldError("description")
        value = parse_positive_amount("amount", amount)
        method = load_payment_method(self._session, tenant_id, payment_method_id)
        load_category(self._session, tenant_id, category_id)
        if supplier_id is not None:
            load_supplier(self._session, tenant_id, supplier_id)

        number = self._sequence.next_number(tenant_id, SequenceService.EXPENSES)
        expense = Expense(
            tenant_id=tenant_id,
            number=number,
            expense_date=expense_date or self._clock.today(),
            description=description,
            amount=value,
            invoice_number=invoice_number,
            supplier_id=supplier_id,
            payment_method_id=method.id,
            category_id=category_id,
            registered_by=actor.id,
            notes=notes,
        )
        self._session.add(expense)
        self._session.flush()

        account = self._accounts.get_account_for_method(
            tenant_id, method.id, for_update=True
        )
        if account is None:
            logger.warning(
                "account_mirroring_skipped",
                extra={
                    "payment_method_id": str(method.id),
                    "reference_id": str(expense.id),
                    "operation": "expense",
                },
            )
        else:
            self._accounts.debit(
                account,
                value,
                f"Expense #{number}: {description}"[:500],
                registered_by=actor.id,
                reference_id=expense.id,
                reference_type=ReferenceType.EXPENSE,
            )

        logger.info(
            "expense_created",
            extra={
                "expense_id": str(expense.id),
                "expense_number": number,
                "amount": str(value),
            },
        )
        return expense

    def delete_expense(self, tenant_id: UUID, expense_id: UUID, actor: Actor) -> None:
        """Reverse the expense's bookings and delete it."""
        expense = self.get_expense(tenant_id, expense_id)
        reversed_amounts = self._accounts.reverse_reference(tenant_id, expense.id)
        self._session.delete(expense)
        self._session.flush()
        logger.info(
            "expense_deleted",
            extra={
                "expense_id": str(expense_id),
                "expense_number": expense.number,
                "amount": str(expense.amount),
                "accounts_touched": len(reversed_amounts),
                "deleted_by": str(actor.id),
            },
        )
