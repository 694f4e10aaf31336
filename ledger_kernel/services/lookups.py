"""
Tenant-scoped row lookups shared by the ledger services.

Every function filters on ``tenant_id``; a row that exists in another tenant
is reported exactly like a missing one.  ``for_update=True`` takes a row lock
and refreshes the identity-map copy (``populate_existing``) so the caller
reads the committed balance, not a stale cached one.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import (
    InactiveReferenceError,
    MissingFieldError,
    OrderNotFoundError,
    PaymentNotFoundError,
    ReferenceNotFoundError,
)
from ledger_kernel.models.order import Order
from ledger_kernel.models.payment import Payment
from ledger_kernel.models.reference import Category, Customer, PaymentMethod, Supplier


def load_order(
    session: Session,
    tenant_id: UUID,
    order_id: UUID,
    for_update: bool = False,
) -> Order:
    """Raises OrderNotFoundError outside the tenant."""
    if order_id is None:
        raise MissingFieldError("order_id")
    stmt = select(Order).where(Order.id == order_id, Order.tenant_id == tenant_id)
    if for_update:
        stmt = stmt.with_for_update(of=Order).execution_options(populate_existing=True)
    order = session.execute(stmt).scalar_one_or_none()
    if order is None:
        raise OrderNotFoundError(str(order_id))
    return order


def load_payment(
    session: Session,
    tenant_id: UUID,
    payment_id: UUID,
    for_update: bool = False,
) -> Payment:
    """Raises PaymentNotFoundError outside the tenant."""
    if payment_id is None:
        raise MissingFieldError("payment_id")
    stmt = select(Payment).where(
        Payment.id == payment_id, Payment.tenant_id == tenant_id
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    payment = session.execute(stmt).scalar_one_or_none()
    if payment is None:
        raise PaymentNotFoundError(str(payment_id))
    return payment


def _load_reference(session, model, entity_type, tenant_id, entity_id, field, require_active):
    if entity_id is None:
        raise MissingFieldError(field)
    row = session.execute(
        select(model).where(model.id == entity_id, model.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if row is None:
        raise ReferenceNotFoundError(entity_type, str(entity_id))
    if require_active and not row.is_active:
        raise InactiveReferenceError(entity_type, str(entity_id))
    return row


def load_customer(
    session: Session,
    tenant_id: UUID,
    customer_id: UUID,
    require_active: bool = True,
) -> Customer:
    return _load_reference(
        session, Customer, "Customer", tenant_id, customer_id,
        "customer_id", require_active,
    )


def load_payment_method(
    session: Session,
    tenant_id: UUID,
    payment_method_id: UUID,
    require_active: bool = True,
) -> PaymentMethod:
    return _load_reference(
        session, PaymentMethod, "PaymentMethod", tenant_id, payment_method_id,
        "payment_method_id", require_active,
    )


def load_category(
    session: Session,
    tenant_id: UUID,
    category_id: UUID,
    require_active: bool = True,
) -> Category:
    return _load_reference(
        session, Category, "Category", tenant_id, category_id,
        "category_id", require_active,
    )


def load_supplier(
    session: Session,
    tenant_id: UUID,
    supplier_id: UUID,
    require_active: bool = True,
) -> Supplier:
    return _load_reference(
        session, Supplier, "Supplier", tenant_id, supplier_id,
        "supplier_id", require_active,
    )
