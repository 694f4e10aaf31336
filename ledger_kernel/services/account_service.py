"""
AccountService -- cash-account journal for payment methods.

Responsibility:
    Books CREDIT/DEBIT transactions on the account of a payment method and
    keeps ``Account.balance`` equal to the signed sum of its transactions.
    Reverses every transaction mirroring a given payment or expense.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by PaymentService and ExpenseService inside their unit of work.

Invariants enforced:
    - Account.balance == sum(CREDIT) - sum(DEBIT), maintained by changing
      the balance and the journal in the same flush.
    - Account rows are locked (FOR UPDATE, ascending id) before their
      balance is changed.  Callers already holding an order lock take
      account locks after it, never before.

Failure modes:
    - InvalidAmountError if a booking amount is not strictly positive.
    - AccountNotFoundError from get_account().

Audit relevance:
    Every booking and reversal is logged with account, amount and the
    reference it mirrors.
"""

from collections import defaultdict
from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import AccountNotFoundError, InvalidAmountError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import (
    Account,
    ReferenceType,
    Transaction,
    TransactionType,
)

logger = get_logger("services.account")


class AccountService:
    """
    Books and reverses account transactions.

    Contract:
        ``credit``/``debit`` expect an account already locked by the caller
        (via ``get_account_for_method(..., for_update=True)`` or
        ``lock_accounts``).  ``reverse_reference`` takes its own locks.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - No double-entry: one account per payment method, no contra side.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Reads and locks
    # ------------------------------------------------------------------

    def get_account(
        self,
        tenant_id: UUID,
        account_id: UUID,
        for_update: bool = False,
    ) -> Account:
        stmt = select(Account).where(
            Account.id == account_id, Account.tenant_id == tenant_id
        )
        if for_update:
            stmt = stmt.with_for_update(of=Account).execution_options(
                populate_existing=True
            )
        account = self._session.execute(stmt).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def get_account_for_method(
        self,
        tenant_id: UUID,
        payment_method_id: UUID,
        for_update: bool = False,
    ) -> Account | None:
        """The method's account, or None if the tenant never provisioned one."""
        stmt = select(Account).where(
            Account.tenant_id == tenant_id,
            Account.payment_method_id == payment_method_id,
        )
        if for_update:
            stmt = stmt.with_for_update(of=Account).execution_options(
                populate_existing=True
            )
        return self._session.execute(stmt).scalar_one_or_none()

    def lock_accounts(self, tenant_id: UUID, account_ids: Iterable[UUID]) -> dict[UUID, Account]:
        """Lock several accounts in ascending id order."""
        ordered = sorted({a for a in account_ids if a is not None}, key=str)
        locked: dict[UUID, Account] = {}
        for account_id in ordered:
            locked[account_id] = self.get_account(tenant_id, account_id, for_update=True)
        return locked

    def lock_accounts_for_methods(
        self,
        tenant_id: UUID,
        payment_method_ids: Iterable[UUID],
    ) -> dict[UUID, Account]:
        """
        Lock the accounts of several payment methods, ascending account id.

        Returns a mapping of payment method id to its locked account;
        methods without an account are absent from the result.
        """
        method_ids = {m for m in payment_method_ids if m is not None}
        if not method_ids:
            return {}
        accounts = self._session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.payment_method_id.in_(method_ids),
            )
        ).scalars().all()
        locked = self.lock_accounts(tenant_id, [a.id for a in accounts])
        return {a.payment_method_id: a for a in locked.values()}

    def transactions_for(self, tenant_id: UUID, reference_id: UUID) -> list[Transaction]:
        """All transactions mirroring a payment or expense, oldest first."""
        return list(
            self._session.execute(
                select(Transaction)
                .where(
                    Transaction.tenant_id == tenant_id,
                    Transaction.reference_id == reference_id,
                )
                .order_by(Transaction.transaction_date, Transaction.created_at)
            ).scalars().all()
        )

    def list_transactions(self, tenant_id: UUID, account_id: UUID) -> list[Transaction]:
        """Journal of one account, oldest first."""
        return list(
            self._session.execute(
                select(Transaction)
                .where(
                    Transaction.tenant_id == tenant_id,
                    Transaction.account_id == account_id,
                )
                .order_by(Transaction.transaction_date, Transaction.created_at)
            ).scalars().all()
        )

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    def credit(
        self,
        account: Account,
        amount: Decimal,
        description: str,
        registered_by: UUID,
        reference_id: UUID | None = None,
        reference_type: ReferenceType | None = None,
    ) -> Transaction:
        """Money in: append a CREDIT row and raise the balance."""
        return self._book(
            account, TransactionType.CREDIT, amount, description,
            registered_by, reference_id, reference_type,
        )

    def debit(
        self,
        account: Account,
        amount: Decimal,
        description: str,
        registered_by: UUID,
        reference_id: UUID | None = None,
        reference_type: ReferenceType | None = None,
    ) -> Transaction:
        """Money out: append a DEBIT row and lower the balance."""
        return self._book(
            account, TransactionType.DEBIT, amount, description,
            registered_by, reference_id, reference_type,
        )

    def _book(
        self,
        account: Account,
        transaction_type: TransactionType,
        amount: Decimal,
        description: str,
        registered_by: UUID,
        reference_id: UUID | None,
        reference_type: ReferenceType | None,
    ) -> Transaction:
        if amount is None or amount <= 0:
            raise InvalidAmountError("amount", str(amount))

        transaction = Transaction(
            tenant_id=account.tenant_id,
            account_id=account.id,
            type=transaction_type.value,
            amount=amount,
            description=description,
            reference_id=reference_id,
            reference_type=reference_type.value if reference_type else None,
            transaction_date=self._clock.now(),
            registered_by=registered_by,
        )
        self._session.add(transaction)

        if transaction_type == TransactionType.CREDIT:
            account.balance = account.balance + amount
        else:
            account.balance = account.balance - amount
        self._session.flush()

        logger.info(
            "account_transaction_booked",
            extra={
                "account_id": str(account.id),
                "transaction_type": transaction_type.value,
                "amount": str(amount),
                "reference_id": str(reference_id) if reference_id else None,
                "reference_type": reference_type.value if reference_type else None,
                "account_balance": str(account.balance),
            },
        )
        return transaction

    def reverse_reference(self, tenant_id: UUID, reference_id: UUID) -> dict[UUID, Decimal]:
        """
        Remove every transaction mirroring ``reference_id``.

        Each touched account is decremented by the signed sum of its removed
        transactions, so its balance keeps matching its remaining journal.

        Returns:
            Signed amount removed per account id (empty if nothing was booked).
        """
        transactions = self.transactions_for(tenant_id, reference_id)
        if not transactions:
            return {}

        removed: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for transaction in transactions:
            removed[transaction.account_id] += transaction.signed_amount

        accounts = self.lock_accounts(tenant_id, removed.keys())
        for account_id, signed_total in removed.items():
            account = accounts[account_id]
            account.balance = account.balance - signed_total

        for transaction in transactions:
            self._session.delete(transaction)
        self._session.flush()

        logger.info(
            "account_transactions_reversed",
            extra={
                "reference_id": str(reference_id),
                "transaction_count": len(transactions),
                "accounts": {str(k): str(v) for k, v in removed.items()},
            },
        )
        return dict(removed)

    def computed_balance(self, account: Account) -> Decimal:
        """Signed sum of the account's journal, read from the database."""
        total = ZERO
        for transaction in self.list_transactions(account.tenant_id, account.id):
            total += transaction.signed_amount
        return total
