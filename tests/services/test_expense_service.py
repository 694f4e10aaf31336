"""
Tests for ExpenseService: numbering, account debit and reversal on delete.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import (
    ExpenseNotFoundError,
    InactiveReferenceError,
    InvalidAmountError,
    MissingFieldError,
    ReferenceNotFoundError,
)
from ledger_kernel.models.account import ReferenceType, TransactionType
from ledger_kernel.models.expense import Expense
from ledger_kernel.services.provisioning_service import ProvisioningService


@pytest.fixture
def category(provisioned):
    return provisioned.categories["Materiales"]


@pytest.fixture
def make_expense(services, tenant_id, cash_method, category, actor):
    def _make(amount="25000", description="Vinilo", **kwargs):
        kwargs.setdefault("payment_method_id", cash_method.id)
        kwargs.setdefault("category_id", category.id)
        return services.expenses.create_expense(
            tenant_id, description, amount, actor=actor, **kwargs
        )

    return _make


class TestCreateExpense:

    def test_debits_account(self, services, tenant_id, make_expense, cash_account):
        expense = make_expense("25000", "Vinilo adhesivo")

        assert expense.number == 1
        assert expense.amount == Decimal("25000.00")
        assert cash_account.balance == Decimal("-25000.00")
        [txn] = services.accounts.transactions_for(tenant_id, expense.id)
        assert txn.type == TransactionType.DEBIT
        assert txn.reference_type == ReferenceType.EXPENSE
        assert txn.description == "Expense #1: Vinilo adhesivo"

    def test_numbering_independent_of_orders(self, make_order, make_expense):
        make_order()
        make_order()

        assert [make_expense().number, make_expense().number] == [1, 2]

    def test_defaults_date_to_clock(self, make_expense, deterministic_clock):
        assert make_expense().expense_date == deterministic_clock.today()

    def test_with_supplier(self, session, tenant_id, make_expense):
        supplier = ProvisioningService(session).add_supplier(tenant_id, "Papeleria Central")

        expense = make_expense(
            supplier_id=supplier.id, expense_date=date(2024, 2, 1), invoice_number="FV-88",
        )

        assert expense.supplier_id == supplier.id
        assert expense.invoice_number == "FV-88"

    def test_blank_description(self, make_expense):
        with pytest.raises(MissingFieldError) as exc_info:
            make_expense(description="   ")

        assert exc_info.value.field == "description"

    @pytest.mark.parametrize("amount", ["0", "-5", "x"])
    def test_invalid_amount(self, make_expense, amount):
        with pytest.raises(InvalidAmountError):
            make_expense(amount=amount)

    def test_unknown_category(self, make_expense):
        with pytest.raises(ReferenceNotFoundError):
            make_expense(category_id=uuid4())

    def test_inactive_method(self, session, make_expense, cash_method):
        cash_method.is_active = False
        session.flush()

        with pytest.raises(InactiveReferenceError):
            make_expense()

    def test_method_without_account(self, session, services, tenant_id, make_expense, captured_logs):
        method = ProvisioningService(session).add_payment_method(tenant_id, "Tarjeta")

        expense = make_expense(payment_method_id=method.id)

        assert services.accounts.transactions_for(tenant_id, expense.id) == []
        assert any(
            r["message"] == "account_mirroring_skipped" for r in captured_logs()
        )


class TestDeleteExpense:

    def test_reverses_debit(self, session, services, tenant_id, actor, make_expense, cash_account):
        expense = make_expense("25000")

        services.expenses.delete_expense(tenant_id, expense.id, actor)

        assert cash_account.balance == Decimal("0.00")
        assert services.accounts.transactions_for(tenant_id, expense.id) == []
        assert session.get(Expense, expense.id) is None

    def test_unknown_expense(self, services, tenant_id, actor):
        with pytest.raises(ExpenseNotFoundError):
            services.expenses.delete_expense(tenant_id, uuid4(), actor)

    def test_other_tenant(self, services, actor, make_expense):
        expense = make_expense()

        with pytest.raises(ExpenseNotFoundError):
            services.expenses.delete_expense(uuid4(), expense.id, actor)
