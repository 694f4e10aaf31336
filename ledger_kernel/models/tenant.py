"""
Module: ledger_kernel.models.tenant
Responsibility: ORM persistence for tenants, the isolation boundary of every
    ledger row.
Architecture position: Kernel > Models.  May import from db/base.py only.

The ledger core never mutates a Tenant.  Rows are created by the
provisioning service and referenced by ``tenant_id`` everywhere else.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class Tenant(Base):
    """A business whose orders, payments and accounts are kept apart from all others."""

    __tablename__ = "tenants"

    __table_args__ = (
        UniqueConstraint("slug", name="uq_tenant_slug"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # URL-safe handle, used to make provisioning idempotent
    slug: Mapped[str] = mapped_column(String(100), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Tenant {self.slug}>"
