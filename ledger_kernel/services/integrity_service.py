"""
IntegrityService -- read-only audit of the two ledger invariants.

    Order:    status != CANCELLED  =>  balance == total - sum(payments.amount)
              status == CANCELLED  =>  balance == 0 and no payments
    Account:  balance == sum(CREDIT) - sum(DEBIT)

Nothing here writes.  Findings are returned as IntegrityIssue values and
logged at ERROR so drift is visible without failing the caller.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.domain.status import OrderStatus
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, Transaction, TransactionType
from ledger_kernel.models.order import Order
from ledger_kernel.models.payment import Payment

logger = get_logger("services.integrity")


@dataclass(frozen=True)
class IntegrityIssue:
    """One broken invariant on one row."""

    entity_type: str
    entity_id: UUID
    check: str
    expected: Decimal
    actual: Decimal


@dataclass
class IntegrityReport:
    tenant_id: UUID
    orders_checked: int = 0
    accounts_checked: int = 0
    issues: list[IntegrityIssue] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.issues


class IntegrityService:
    def __init__(self, session: Session):
        self._session = session

    def _payments_total(self, order: Order) -> tuple[Decimal, int]:
        total, count = self._session.execute(
            select(func.coalesce(func.sum(Payment.amount), 0), func.count(Payment.id))
            .where(Payment.tenant_id == order.tenant_id, Payment.order_id == order.id)
        ).one()
        return round_money(Decimal(str(total))), count

    def check_order(self, order: Order) -> list[IntegrityIssue]:
        paid, payment_count = self._payments_total(order)
        issues = []
        if order.status == OrderStatus.CANCELLED:
            if order.balance != ZERO:
                issues.append(IntegrityIssue(
                    "Order", order.id, "cancelled_balance", ZERO, order.balance,
                ))
            if payment_count:
                issues.append(IntegrityIssue(
                    "Order", order.id, "cancelled_payments", ZERO, paid,
                ))
        else:
            expected = order.total - paid
            if order.balance != expected:
                issues.append(IntegrityIssue(
                    "Order", order.id, "order_balance", expected, order.balance,
                ))
        return issues

    def check_account(self, account: Account) -> list[IntegrityIssue]:
        rows = self._session.execute(
            select(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0))
            .where(Transaction.account_id == account.id)
            .group_by(Transaction.type)
        ).all()
        sums = {t: round_money(Decimal(str(amount))) for t, amount in rows}
        expected = (
            sums.get(TransactionType.CREDIT.value, ZERO)
            - sums.get(TransactionType.DEBIT.value, ZERO)
        )
        if account.balance != expected:
            return [IntegrityIssue(
                "Account", account.id, "account_balance", expected, account.balance,
            )]
        return []

    def audit_tenant(self, tenant_id: UUID) -> IntegrityReport:
        report = IntegrityReport(tenant_id=tenant_id)

        orders = self._session.execute(
            select(Order).where(Order.tenant_id == tenant_id)
        ).scalars().all()
        for order in orders:
            report.issues.extend(self.check_order(order))
        report.orders_checked = len(orders)

        accounts = self._session.execute(
            select(Account).where(Account.tenant_id == tenant_id)
        ).scalars().all()
        for account in accounts:
            report.issues.extend(self.check_account(account))
        report.accounts_checked = len(accounts)

        for issue in report.issues:
            logger.error(
                "ledger_integrity_violation",
                extra={
                    "entity_type": issue.entity_type,
                    "entity_id": str(issue.entity_id),
                    "check": issue.check,
                    "expected": str(issue.expected),
                    "actual": str(issue.actual),
                },
            )
        logger.info(
            "ledger_audit_completed",
            extra={
                "tenant_id": str(tenant_id),
                "orders_checked": report.orders_checked,
                "accounts_checked": report.accounts_checked,
                "issue_count": len(report.issues),
            },
        )
        return report
