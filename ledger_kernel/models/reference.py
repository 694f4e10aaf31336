"""
Module: ledger_kernel.models.reference
Responsibility: ORM persistence for tenant reference data consumed by the
    ledger: payment methods, customers, expense categories and suppliers.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Names (identification for customers) are unique per tenant.
    - Rows referenced by ledger records are never deleted; see
      services/reference_guard.py.  Storage-level cascades are not declared
      on any foreign key pointing here.
"""

from enum import Enum

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedTenantBase


class CategoryType(str, Enum):
    """Which side of the business a category classifies."""

    EXPENSE = "EXPENSE"
    INCOME = "INCOME"
    BOTH = "BOTH"


class PaymentMethod(TrackedTenantBase):
    """A way money is received or paid out (cash, a bank, a wallet)."""

    __tablename__ = "payment_methods"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_payment_method_tenant_name"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<PaymentMethod {self.name}>"


class Customer(TrackedTenantBase):
    """Buyer an order is billed to."""

    __tablename__ = "customers"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "identification", name="uq_customer_tenant_identification"
        ),
        Index("idx_customer_tenant_name", "tenant_id", "name"),
    )

    # National id / tax id as given by the customer
    identification: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Customer {self.identification}: {self.name}>"


class Category(TrackedTenantBase):
    """Classification attached to expenses."""

    __tablename__ = "categories"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_category_tenant_name"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    type: Mapped[CategoryType] = mapped_column(
        String(10),
        default=CategoryType.EXPENSE.value,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Category {self.name} ({self.type})>"


class Supplier(TrackedTenantBase):
    """Vendor an expense was paid to."""

    __tablename__ = "suppliers"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_supplier_tenant_name"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    tax_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Supplier {self.name}>"
