"""
Module: ledger_kernel.models.payment
Responsibility: ORM persistence for payments received against an order.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - amount > 0 (check constraint, and validated by PaymentService).
    - Created, edited and deleted only while the parent order is not
      CANCELLED, under a row lock on the order.
    - Each live payment has at most one PAYMENT transaction on an account.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedTenantBase, UUIDString


class Payment(TrackedTenantBase):
    """Money received from a customer toward one order."""

    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        Index("idx_payment_order", "order_id"),
        Index("idx_payment_method", "payment_method_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )

    payment_method_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payment_methods.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    registered_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Payment {self.amount} on order {self.order_id}>"
