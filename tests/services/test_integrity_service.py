"""
Tests for the read-only ledger audit.

Drift is injected with bulk UPDATE statements, which bypass the services
the way a manual database fix would.
"""

from decimal import Decimal

from sqlalchemy import update

from ledger_kernel.models.account import Account
from ledger_kernel.models.order import Order


class TestAuditTenant:

    def test_consistent_after_activity(
        self, services, tenant_id, actor, make_order, cash_method, nequi_method, provisioned,
    ):
        paid = make_order(Decimal("100000"))
        services.payments.apply_payment(tenant_id, paid.id, cash_method.id, "60000", actor)
        payment = services.payments.apply_payment(tenant_id, paid.id, nequi_method.id, "30000", actor)
        services.payments.edit_payment(tenant_id, payment.id, actor, amount="35000")
        services.status.cancel_order(tenant_id, make_order().id, actor)
        services.expenses.create_expense(
            tenant_id, "Flete", "8000", cash_method.id,
            provisioned.categories["Transporte"].id, actor,
        )

        report = services.integrity.audit_tenant(tenant_id)

        assert report.is_consistent
        assert report.orders_checked == 2
        assert report.accounts_checked == len(provisioned.accounts)

    def test_detects_order_drift(self, session, services, tenant_id, make_order, captured_logs):
        order = make_order(Decimal("1000"))
        session.execute(
            update(Order).where(Order.id == order.id).values(balance=Decimal("900.00"))
        )

        report = services.integrity.audit_tenant(tenant_id)

        [issue] = report.issues
        assert issue.entity_type == "Order"
        assert issue.check == "order_balance"
        assert issue.expected == Decimal("1000.00")
        assert issue.actual == Decimal("900.00")
        errors = [r for r in captured_logs() if r["message"] == "ledger_integrity_violation"]
        assert errors and errors[0]["level"] == "ERROR"

    def test_detects_account_drift(self, session, services, tenant_id, actor, make_order, cash_method, cash_account):
        order = make_order(Decimal("1000"))
        services.payments.apply_payment(tenant_id, order.id, cash_method.id, "400", actor)
        session.execute(
            update(Account).where(Account.id == cash_account.id).values(balance=Decimal("0.00"))
        )

        report = services.integrity.audit_tenant(tenant_id)

        [issue] = report.issues
        assert issue.entity_type == "Account"
        assert issue.expected == Decimal("400.00")

    def test_detects_cancelled_with_balance(self, session, services, tenant_id, actor, make_order):
        order = services.status.cancel_order(tenant_id, make_order().id, actor)
        session.execute(
            update(Order).where(Order.id == order.id).values(balance=Decimal("5.00"))
        )

        report = services.integrity.audit_tenant(tenant_id)

        assert [i.check for i in report.issues] == ["cancelled_balance"]

    def test_empty_tenant(self, services, tenant_id):
        report = services.integrity.audit_tenant(tenant_id)

        assert report.is_consistent
        assert report.orders_checked == 0
