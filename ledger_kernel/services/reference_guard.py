"""
ReferenceGuard -- deletes reference data only when nothing points at it.

Foreign keys into reference tables carry no ON DELETE cascade.  Deleting a
payment method, supplier, category or customer goes through this guard,
which counts the ledger rows that still reference it and refuses with
EntityReferencedError while any remain.  The check runs first so callers
get a typed error instead of a database integrity failure.

A payment method's own account is not a blocker while it is empty (no
transactions): it is removed together with the method.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import EntityReferencedError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, Transaction
from ledger_kernel.models.expense import Expense
from ledger_kernel.models.order import Order
from ledger_kernel.models.payment import Payment
from ledger_kernel.services.lookups import (
    load_category,
    load_customer,
    load_payment_method,
    load_supplier,
)

logger = get_logger("services.reference_guard")


class ReferenceGuard:
    """Guarded deletion of reference data.  Does NOT commit."""

    def __init__(self, session: Session):
        self._session = session

    def _count(self, model, *criteria) -> int:
        return self._session.execute(
            select(func.count()).select_from(model).where(*criteria)
        ).scalar_one()

    def _refuse_if_referenced(
        self,
        entity_type: str,
        entity_id: UUID,
        references: list[tuple[str, int]],
    ) -> None:
        for referenced_by, count in references:
            if count:
                logger.warning(
                    "reference_delete_refused",
                    extra={
                        "entity_type": entity_type,
                        "entity_id": str(entity_id),
                        "referenced_by": referenced_by,
                        "count": count,
                    },
                )
                raise EntityReferencedError(
                    entity_type, str(entity_id), referenced_by, count
                )

    def _delete(self, entity_type: str, row) -> None:
        self._session.delete(row)
        self._session.flush()
        logger.info(
            "reference_deleted",
            extra={"entity_type": entity_type, "entity_id": str(row.id)},
        )

    def delete_payment_method(self, tenant_id: UUID, payment_method_id: UUID) -> None:
        method = load_payment_method(
            self._session, tenant_id, payment_method_id, require_active=False
        )
        account = self._session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.payment_method_id == method.id,
            )
        ).scalar_one_or_none()

        references = [
            ("Payment", self._count(
                Payment, Payment.tenant_id == tenant_id,
                Payment.payment_method_id == method.id,
            )),
            ("Expense", self._count(
                Expense, Expense.tenant_id == tenant_id,
                Expense.payment_method_id == method.id,
            )),
        ]
        if account is not None:
            references.append((
                "Transaction",
                self._count(Transaction, Transaction.account_id == account.id),
            ))
        self._refuse_if_referenced("PaymentMethod", method.id, references)

        if account is not None:
            self._session.delete(account)
            self._session.flush()
        self._delete("PaymentMethod", method)

    def delete_supplier(self, tenant_id: UUID, supplier_id: UUID) -> None:
        supplier = load_supplier(
            self._session, tenant_id, supplier_id, require_active=False
        )
        self._refuse_if_referenced("Supplier", supplier.id, [
            ("Expense", self._count(
                Expense, Expense.tenant_id == tenant_id,
                Expense.supplier_id == supplier.id,
            )),
        ])
        self._delete("Supplier", supplier)

    def delete_category(self, tenant_id: UUID, category_id: UUID) -> None:
        category = load_category(
            self._session, tenant_id, category_id, require_active=False
        )
        self._refuse_if_referenced("Category", category.id, [
            ("Expense", self._count(
                Expense, Expense.tenant_id == tenant_id,
                Expense.category_id == category.id,
            )),
        ])
        self._delete("Category", category)

    def delete_customer(self, tenant_id: UUID, customer_id: UUID) -> None:
        customer = load_customer(
            self._session, tenant_id, customer_id, require_active=False
        )
        self._refuse_if_referenced("Customer", customer.id, [
            ("Order", self._count(
                Order, Order.tenant_id == tenant_id,
                Order.customer_id == customer.id,
            )),
        ])
        self._delete("Customer", customer)
