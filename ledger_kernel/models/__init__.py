"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import (
    Account,
    ReferenceType,
    Transaction,
    TransactionType,
)
from ledger_kernel.models.expense import Expense
from ledger_kernel.models.order import Order, OrderItem, OrderStatusHistory
from ledger_kernel.models.payment import Payment
from ledger_kernel.models.reference import (
    Category,
    CategoryType,
    Customer,
    PaymentMethod,
    Supplier,
)
from ledger_kernel.models.tenant import Tenant

__all__ = [
    "Tenant",
    "PaymentMethod",
    "Customer",
    "Category",
    "CategoryType",
    "Supplier",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "Payment",
    "Account",
    "Transaction",
    "TransactionType",
    "ReferenceType",
    "Expense",
]
