"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.authorization import (
    AllowAllAuthority,
    Authority,
    PermissionSetAuthority,
    require,
)
from ledger_kernel.services.expense_service import ExpenseService
from ledger_kernel.services.integrity_service import (
    IntegrityIssue,
    IntegrityReport,
    IntegrityService,
)
from ledger_kernel.services.ledger_orchestrator import LedgerOrchestrator, LedgerServices
from ledger_kernel.services.order_service import OrderService
from ledger_kernel.services.payment_service import PaymentService
from ledger_kernel.services.provisioning_service import (
    ProvisionedTenant,
    ProvisioningService,
)
from ledger_kernel.services.reference_guard import ReferenceGuard
from ledger_kernel.services.sequence_service import SequenceCounter, SequenceService
from ledger_kernel.services.status_service import StatusService

__all__ = [
    "AccountService",
    "AllowAllAuthority",
    "Authority",
    "ExpenseService",
    "IntegrityIssue",
    "IntegrityReport",
    "IntegrityService",
    "LedgerOrchestrator",
    "LedgerServices",
    "OrderService",
    "PaymentService",
    "PermissionSetAuthority",
    "ProvisionedTenant",
    "ProvisioningService",
    "ReferenceGuard",
    "SequenceCounter",
    "SequenceService",
    "StatusService",
    "require",
]
