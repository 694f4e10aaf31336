"""
ProvisioningService -- set up a tenant so the ledger can run.

Responsibility:
    Creates a tenant with its payment methods, expense categories and one
    zero-balance account per payment method.  Every step is an upsert keyed
    on the natural unique key (slug, name), so provisioning an existing
    tenant again only fills in what is missing.

Architecture position:
    Kernel > Services -- imperative shell.  Used by scripts/seed_tenant.py
    and by test fixtures.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.reference import (
    Category,
    CategoryType,
    Customer,
    PaymentMethod,
    Supplier,
)
from ledger_kernel.models.tenant import Tenant
from ledger_kernel.services.lookups import load_payment_method

logger = get_logger("services.provisioning")

DEFAULT_PAYMENT_METHODS: tuple[str, ...] = ("Efectivo", "Nequi", "Bancolombia")

DEFAULT_CATEGORIES: tuple[tuple[str, CategoryType], ...] = (
    ("Servicios", CategoryType.EXPENSE),
    ("Materiales", CategoryType.EXPENSE),
    ("Transporte", CategoryType.EXPENSE),
    ("Otros", CategoryType.BOTH),
)


@dataclass
class ProvisionedTenant:
    """What provisioning produced or found, keyed by name."""

    tenant: Tenant
    payment_methods: dict[str, PaymentMethod] = field(default_factory=dict)
    categories: dict[str, Category] = field(default_factory=dict)
    accounts: dict[str, Account] = field(default_factory=dict)


class ProvisioningService:
    """Idempotent tenant setup.  Does NOT commit."""

    def __init__(self, session: Session):
        self._session = session

    def provision_tenant(
        self,
        name: str,
        slug: str,
        payment_methods: Iterable[str] = DEFAULT_PAYMENT_METHODS,
        categories: Iterable[tuple[str, CategoryType]] = DEFAULT_CATEGORIES,
    ) -> ProvisionedTenant:
        tenant = self._session.execute(
            select(Tenant).where(Tenant.slug == slug)
        ).scalar_one_or_none()
        created = tenant is None
        if created:
            tenant = Tenant(name=name, slug=slug, is_active=True)
            self._session.add(tenant)
            self._session.flush()

        result = ProvisionedTenant(tenant=tenant)
        for method_name in payment_methods:
            method = self.add_payment_method(tenant.id, method_name)
            result.payment_methods[method_name] = method
            result.accounts[method_name] = self.ensure_account(tenant.id, method.id)

        for category_name, category_type in categories:
            result.categories[category_name] = self.add_category(
                tenant.id, category_name, category_type
            )

        logger.info(
            "tenant_provisioned",
            extra={
                "tenant_id": str(tenant.id),
                "slug": slug,
                "tenant_created": created,
                "payment_method_count": len(result.payment_methods),
                "category_count": len(result.categories),
            },
        )
        return result

    def add_payment_method(self, tenant_id: UUID, name: str) -> PaymentMethod:
        """Existing method with this name, or a new active one."""
        method = self._session.execute(
            select(PaymentMethod).where(
                PaymentMethod.tenant_id == tenant_id, PaymentMethod.name == name
            )
        ).scalar_one_or_none()
        if method is None:
            method = PaymentMethod(tenant_id=tenant_id, name=name, is_active=True)
            self._session.add(method)
            self._session.flush()
        return method

    def ensure_account(self, tenant_id: UUID, payment_method_id: UUID) -> Account:
        """The method's account, creating a zero-balance one if missing."""
        account = self._session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.payment_method_id == payment_method_id,
            )
        ).scalar_one_or_none()
        if account is not None:
            return account

        method = load_payment_method(
            self._session, tenant_id, payment_method_id, require_active=False
        )
        account = Account(
            tenant_id=tenant_id,
            payment_method_id=method.id,
            name=method.name,
            balance=ZERO,
            is_active=True,
        )
        self._session.add(account)
        self._session.flush()
        logger.info(
            "account_created",
            extra={
                "account_id": str(account.id),
                "payment_method_id": str(method.id),
            },
        )
        return account

    def add_category(
        self,
        tenant_id: UUID,
        name: str,
        category_type: CategoryType = CategoryType.EXPENSE,
    ) -> Category:
        category = self._session.execute(
            select(Category).where(
                Category.tenant_id == tenant_id, Category.name == name
            )
        ).scalar_one_or_none()
        if category is None:
            category = Category(
                tenant_id=tenant_id,
                name=name,
                type=CategoryType(category_type).value,
                is_active=True,
            )
            self._session.add(category)
            self._session.flush()
        return category

    def add_customer(
        self,
        tenant_id: UUID,
        identification: str,
        name: str,
        email: str | None = None,
        phone: str | None = None,
    ) -> Customer:
        customer = self._session.execute(
            select(Customer).where(
                Customer.tenant_id == tenant_id,
                Customer.identification == identification,
            )
        ).scalar_one_or_none()
        if customer is None:
            customer = Customer(
                tenant_id=tenant_id,
                identification=identification,
                name=name,
                email=email,
                phone=phone,
                is_active=True,
            )
            self._session.add(customer)
            self._session.flush()
        return customer

    def add_supplier(self, tenant_id: UUID, name: str, tax_id: str | None = None) -> Supplier:
        supplier = self._session.execute(
            select(Supplier).where(
                Supplier.tenant_id == tenant_id, Supplier.name == name
            )
        ).scalar_one_or_none()
        if supplier is None:
            supplier = Supplier(tenant_id=tenant_id, name=name, tax_id=tax_id, is_active=True)
            self._session.add(supplier)
            self._session.flush()
        return supplier
