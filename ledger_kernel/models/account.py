"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for payment-method cash accounts and their
    transaction journal.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One Account per (tenant_id, payment_method_id).
    - Account.balance == sum(CREDIT amounts) - sum(DEBIT amounts) over its
      transactions.  Maintained by AccountService under a row lock;
      audited by IntegrityService.
    - Transaction.amount > 0; the sign lives in ``type``.
    - Transactions are never updated (ORM listener).  They are deleted only
      when the payment or expense they mirror is reversed.

Audit relevance:
    ``reference_id`` / ``reference_type`` tie every journal row back to the
    payment or expense that caused it, so a reversal can find and remove
    exactly the rows it booked.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantScopedBase, TrackedTenantBase, UUIDString

if TYPE_CHECKING:
    from ledger_kernel.models.reference import PaymentMethod


class TransactionType(str, Enum):
    """Direction of money on a cash account."""

    CREDIT = "CREDIT"  # money in
    DEBIT = "DEBIT"  # money out


class ReferenceType(str, Enum):
    """What kind of ledger record a transaction mirrors."""

    PAYMENT = "PAYMENT"
    PAYMENT_ADJUSTMENT = "PAYMENT_ADJUSTMENT"
    EXPENSE = "EXPENSE"


class Account(TrackedTenantBase):
    """
    Cash position for one payment method.

    Contract:
        ``balance`` is changed only by AccountService.credit(), debit() and
        reverse_reference(), each of which writes or removes the matching
        Transaction rows in the same unit of work.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "payment_method_id", name="uq_account_tenant_method"
        ),
    )

    payment_method_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payment_methods.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    payment_method: Mapped["PaymentMethod"] = relationship()

    def __repr__(self) -> str:
        return f"<Account {self.name}: {self.balance}>"


class Transaction(TenantScopedBase):
    """One movement on an account.  Immutable once flushed."""

    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transaction_amount_positive"),
        Index("idx_transaction_account", "account_id", "transaction_date"),
        Index("idx_transaction_reference", "reference_id"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    type: Mapped[TransactionType] = mapped_column(String(10), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    # Payment or expense id this row mirrors
    reference_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    reference_type: Mapped[ReferenceType | None] = mapped_column(
        String(30), nullable=True
    )

    transaction_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    registered_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return f"<Transaction {self.type} {self.amount} ref={self.reference_type}>"

    @property
    def signed_amount(self) -> Decimal:
        """Positive for CREDIT, negative for DEBIT."""
        if self.type == TransactionType.CREDIT:
            return self.amount
        return -self.amount
