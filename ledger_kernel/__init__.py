"""
Ledger Kernel - order-to-cash consistency engine

Keeps order balances, payment-method cash accounts, their transaction
journal and the order status machines consistent with each other:
- Sequential per-tenant order and expense numbering
- Atomic payment apply/edit/delete with account mirroring
- Commercial and operational status machines with append-only history
- Retry on lock and numbering conflicts
"""

__version__ = "0.1.0"
