"""
Module: ledger_kernel.models.order
Responsibility: ORM persistence for orders, their line items and the
    append-only status history.
Architecture position: Kernel > Models.  May import from db/ and domain/status.

Invariants enforced:
    - (tenant_id, number) is unique; number is assigned once and never
      changes (ORM listener in db/immutability.py).
    - status != CANCELLED  =>  balance == total - sum(payments.amount).
      Maintained by the payment and order services under a row lock on the
      order; audited by services/integrity_service.py.
    - status == CANCELLED  =>  balance == 0 and no payments exist.
    - OrderItem rows are never updated.  OrderStatusHistory rows are never
      updated or deleted.

Failure modes:
    - IntegrityError on duplicate (tenant_id, number); translated to
      SequenceConflictError by the orchestrator.
    - ImmutabilityViolationError from the ORM listeners.
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TenantScopedBase, TrackedTenantBase, UUIDString
from ledger_kernel.domain.status import OperationalStatus, OrderStatus

if TYPE_CHECKING:
    from ledger_kernel.models.reference import Customer


class Order(TrackedTenantBase):
    """
    A customer order and its receivable balance.

    Contract:
        ``balance`` is mutated only by the payment lifecycle, item
        replacement and cancellation, always with the order row locked.
        ``status`` is mutated only through StatusService.transition().

    Guarantees:
        - total == subtotal + tax_amount - discount.
        - 0 <= balance <= total.
    """

    __tablename__ = "orders"

    __table_args__ = (
        UniqueConstraint("tenant_id", "number", name="uq_order_tenant_number"),
        CheckConstraint("balance >= 0", name="ck_order_balance_non_negative"),
        Index("idx_order_tenant_status", "tenant_id", "status"),
        Index("idx_order_customer", "customer_id"),
    )

    # Sequential per-tenant number from the "orders" series
    number: Mapped[int] = mapped_column(Integer, nullable=False)

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )

    order_date: Mapped[date] = mapped_column(Date, nullable=False)

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False)

    # Fraction in [0, 1), e.g. 0.1900
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)

    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)

    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total: Mapped[Decimal] = mapped_column(nullable=False)

    # Amount still owed
    balance: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[OrderStatus] = mapped_column(
        String(20),
        default=OrderStatus.ACTIVE.value,
        nullable=False,
    )

    operational_status: Mapped[OperationalStatus] = mapped_column(
        String(20),
        default=OperationalStatus.PENDING.value,
        nullable=False,
    )

    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    seller_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Denormalized so the order keeps its seller name if the user is renamed
    seller_name: Mapped[str] = mapped_column(String(255), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )

    customer: Mapped["Customer"] = relationship()

    def __repr__(self) -> str:
        return f"<Order #{self.number} {self.status} balance={self.balance}>"

    @property
    def amount_received(self) -> Decimal:
        """Money collected so far: total minus what is still owed."""
        if self.status == OrderStatus.CANCELLED:
            return Decimal("0.00")
        return self.total - self.balance

    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED


class OrderItem(TenantScopedBase):
    """One priced line of an order.  Never updated; replaced as a set."""

    __tablename__ = "order_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_item_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_order_item_price_non_negative"),
        Index("idx_order_item_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )

    # Display order within the order, 0-based
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    line_total: Mapped[Decimal] = mapped_column(nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem {self.description} x{self.quantity}>"


class OrderStatusHistory(TenantScopedBase):
    """
    Append-only record of a commercial status change.

    When an operational move also completes the order, the operational
    columns are filled on the same row.
    """

    __tablename__ = "order_status_history"

    __table_args__ = (
        Index("idx_status_history_order", "order_id", "created_at"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )

    # None only on the creation row
    from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    to_status: Mapped[str] = mapped_column(String(20), nullable=False)

    from_operational_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    to_operational_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    changed_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return f"<OrderStatusHistory {self.from_status} -> {self.to_status}>"
