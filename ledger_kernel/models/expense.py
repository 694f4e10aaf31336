"""
Module: ledger_kernel.models.expense
Responsibility: ORM persistence for numbered business expenses.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (tenant_id, number) unique; numbers come from the "expenses" series.
    - amount > 0.  Each expense is mirrored by one DEBIT transaction on the
      paying method's account while it exists.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedTenantBase, UUIDString


class Expense(TrackedTenantBase):
    """Money paid out of a payment-method account."""

    __tablename__ = "expenses"

    __table_args__ = (
        UniqueConstraint("tenant_id", "number", name="uq_expense_tenant_number"),
        CheckConstraint("amount > 0", name="ck_expense_amount_positive"),
        Index("idx_expense_tenant_date", "tenant_id", "expense_date"),
    )

    number: Mapped[int] = mapped_column(Integer, nullable=False)

    expense_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    # Supplier's invoice reference, free text
    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    supplier_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("suppliers.id"),
        nullable=True,
    )

    payment_method_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payment_methods.id"),
        nullable=False,
    )

    category_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("categories.id"),
        nullable=False,
    )

    registered_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Expense #{self.number} {self.amount}>"
